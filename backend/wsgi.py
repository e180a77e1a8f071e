from wholesale import create_app

app = create_app()
