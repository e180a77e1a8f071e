from .catalog import Product, FlatTaxRule, ProductFlatTax
from .customers import Customer, CustomerPriceMemory, PRICE_MEMORY_REASONS
from .orders import Order, OrderLine, DocumentSequence
from .audit import TaxCalculationAudit, TobaccoSaleRecord

__all__ = [
    'Product', 'FlatTaxRule', 'ProductFlatTax',
    'Customer', 'CustomerPriceMemory', 'PRICE_MEMORY_REASONS',
    'Order', 'OrderLine', 'DocumentSequence',
    'TaxCalculationAudit', 'TobaccoSaleRecord',
]
