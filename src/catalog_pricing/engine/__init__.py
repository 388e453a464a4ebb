"""Engine subpackage - per-SKU pricing calculators and the breakdown aggregator."""
from .context import build_context
from .models import PricingBreakdown, PricingContext
from .pricing_engine import OUTPUT_COLUMNS, PricingEngine, output_fields
from .records import ProductRecord

__all__ = [
    'PricingEngine',
    'PricingBreakdown',
    'PricingContext',
    'ProductRecord',
    'build_context',
    'output_fields',
    'OUTPUT_COLUMNS',
]
