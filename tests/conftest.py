import threading

import pytest

from catalog_pricing.config.settings import Settings
from catalog_pricing.engine import PricingEngine, build_context
from catalog_pricing.store.table_store import InMemoryTableStore, TableSnapshot

PRODUCT_HEADERS = [
    'SKU', 'Name', 'Line', 'FactoryPriceUnit_Manual', 'FX_BufferPct',
    'FullCost_EUR', 'UVP_Net', 'UVP_Inc', 'Floor_B2C_Net', 'Guardrail_OK',
    'Net_Dealer_Basic', 'Pricing_Engine_Version', 'Custom_Note',
]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        project_root=tmp_path,
        data_dir=tmp_path,
        workbook_path=tmp_path / 'pricing.xlsx',
        pause_seconds=0.0,
    )


@pytest.fixture
def fee_tables():
    return {
        'channels': [
            {'ChannelID': 'OwnStore', 'DHL_Zone': 'DE_1'},
            {'ChannelID': 'Amazon_FBA', 'Referral_Pct_Low': '8', 'Referral_Pct_High': '15',
             'Referral_Threshold_EUR': '10', 'Referral_Min_EUR': '0.30'},
        ],
        'amazon_tiers': [
            {'TierKey': 'Std_Parcel', 'FBA_Fee_EUR': '3.20', 'FBA_Surcharge_2025_EUR': '0.10'},
        ],
        'dhl_matrix': [
            {'Zone': 'DE_1', 'Weight_Min_g': '0', 'Weight_Max_g': '1000', 'Base_Rate_EUR': '4.00'},
            {'Zone': 'DE_1', 'Weight_Min_g': '1001', 'Weight_Max_g': '5000', 'Base_Rate_EUR': '6.00'},
        ],
        'dhl_surcharges': [
            {'SurchargeKey': 'Toll', 'Type': 'Fixed_Per_Shipment', 'Amount_EUR': '0.50', 'Active': 'TRUE'},
            {'SurchargeKey': 'Energy', 'Type': 'Pct_Of_Base', 'Pct_Of_Base': '10', 'Active': 'TRUE'},
        ],
    }


@pytest.fixture
def default_context(settings):
    """Built-in defaults only: no parameter, tier or fee rows."""
    return build_context([], (), {}, settings=settings)


@pytest.fixture
def engine(default_context):
    return PricingEngine(default_context)


def product_row(sku, factory='10', line='Basic', **extra):
    row = {
        'SKU': sku,
        'Name': f"Product {sku}",
        'Line': line,
        'FactoryPriceUnit_Manual': factory,
        'FX_BufferPct': '0',
    }
    row.update(extra)
    return row


class BlockingStore(InMemoryTableStore):
    """Holds the product table read until released."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.entered = threading.Event()
        self.release = threading.Event()

    def read_table(self, table):
        if table == self.settings.products_table:
            self.entered.set()
            self.release.wait(5)
        return super().read_table(table)


def products_table(count=10, malformed=()):
    """`count` Basic rows at full cost 10; indexes in `malformed` get a bad factory price."""
    rows = []
    for i in range(count):
        factory = 'abc' if i in malformed else '10'
        rows.append([
            f"SKU-{i + 1:02d}", f"Product {i + 1}", 'Basic', factory, '0',
            '', '', '', '', '', '', '', f"note {i + 1}",
        ])
    return rows


@pytest.fixture
def make_store(settings):
    def make(rows=None, headers=None, tables=None, store_cls=InMemoryTableStore):
        snapshots = {
            settings.products_table: TableSnapshot(
                headers=list(PRODUCT_HEADERS if headers is None else headers),
                rows=products_table() if rows is None else rows,
            ),
        }
        snapshots.update(tables or {})
        return store_cls(snapshots, settings=settings)

    return make
