import pandas as pd
import pytest

from catalog_pricing.errors import StoreError
from catalog_pricing.store.table_store import (
    CsvTableStore,
    InMemoryTableStore,
    TableSnapshot,
    WorkbookTableStore,
    create_store,
)


@pytest.fixture
def csv_dir(tmp_path):
    (tmp_path / 'FinalPriceList.csv').write_text(
        "SKU,Name,UnitsPerCarton,UVP_Net\n"
        "0012, Shampoo ,24,\n"
        "HM-2,Conditioner,,\n",
        encoding='utf-8',
    )
    (tmp_path / 'Pricing_Params.csv').write_text(
        "ParamKey,Value\nVAT_DEFAULT_PCT,19\nFX_BUFFER_PCT,3\n", encoding='utf-8'
    )
    return tmp_path


class TestCsvStore:

    def test_reads_strings_stripped(self, csv_dir, settings):
        store = CsvTableStore(csv_dir, settings=settings)
        snapshot = store.read_all_rows()
        assert snapshot.headers == ['SKU', 'Name', 'UnitsPerCarton', 'UVP_Net']
        assert snapshot.rows[0] == ['0012', 'Shampoo', '24', '']
        assert snapshot.rows[1] == ['HM-2', 'Conditioner', '', '']

    def test_records_and_parameters(self, csv_dir, settings):
        store = CsvTableStore(csv_dir, settings=settings)
        assert store.read_parameters() == [
            {'ParamKey': 'VAT_DEFAULT_PCT', 'Value': '19'},
            {'ParamKey': 'FX_BUFFER_PCT', 'Value': '3'},
        ]

    def test_missing_tables_are_empty(self, csv_dir, settings):
        store = CsvTableStore(csv_dir, settings=settings)
        assert store.read_partner_tiers() == []
        assert store.read_channel_fee_tables() == {
            'channels': [], 'amazon_tiers': [], 'dhl_matrix': [], 'dhl_surcharges': [],
        }

    def test_bulk_overwrite(self, csv_dir, settings):
        store = CsvTableStore(csv_dir, settings=settings)
        store.bulk_overwrite('FinalPriceList', 2, [
            ['0012', 'Shampoo', '24', '20.00'],
            ['HM-2', 'Conditioner', '', '18.50'],
        ])
        snapshot = store.read_all_rows()
        assert snapshot.headers == ['SKU', 'Name', 'UnitsPerCarton', 'UVP_Net']
        assert [r[3] for r in snapshot.rows] == ['20.00', '18.50']
        assert snapshot.rows[0][0] == '0012'

    def test_overwrite_from_second_data_row(self, csv_dir, settings):
        store = CsvTableStore(csv_dir, settings=settings)
        store.bulk_overwrite('FinalPriceList', 3, [['HM-2', 'Conditioner', '12', '9.99']])
        rows = store.read_all_rows().rows
        assert rows[0] == ['0012', 'Shampoo', '24', '']
        assert rows[1] == ['HM-2', 'Conditioner', '12', '9.99']

    def test_header_row_cannot_be_overwritten(self, csv_dir, settings):
        with pytest.raises(StoreError):
            CsvTableStore(csv_dir, settings=settings).bulk_overwrite('FinalPriceList', 1, [])


class TestInMemoryStore:

    def test_from_records(self, settings):
        store = InMemoryTableStore.from_records({
            'Channels': [
                {'ChannelID': 'OwnStore', 'DHL_Zone': 'DE_2'},
                {'ChannelID': 'Amazon_FBA', 'Referral_Pct_Low': '7'},
            ],
        }, settings=settings)
        snapshot = store.read_table('Channels')
        assert snapshot.headers == ['ChannelID', 'DHL_Zone', 'Referral_Pct_Low']
        assert snapshot.rows[1] == ['Amazon_FBA', '', '7']
        assert store.read_channel_fee_tables()['channels'][0]['DHL_Zone'] == 'DE_2'

    def test_writes_are_recorded(self, settings):
        store = InMemoryTableStore({'T': TableSnapshot(['A'], [['1'], ['2']])}, settings=settings)
        store.bulk_overwrite('T', 2, [['x'], ['y']])
        assert store.writes == [('T', 2, [['x'], ['y']])]
        assert store.read_table('T').rows == [['x'], ['y']]

    def test_reads_are_copies(self, settings):
        store = InMemoryTableStore({'T': TableSnapshot(['A'], [['1']])}, settings=settings)
        store.read_table('T').rows[0][0] = 'changed'
        assert store.read_table('T').rows == [['1']]


class TestWorkbookStore:

    def test_round_trip(self, tmp_path, settings):
        path = tmp_path / 'pricing.xlsx'
        with pd.ExcelWriter(path, engine='openpyxl') as writer:
            pd.DataFrame({'SKU': ['HM-1', 'HM-2'], 'UVP_Net': ['', '']}).to_excel(
                writer, sheet_name='FinalPriceList', index=False
            )
            pd.DataFrame({'ParamKey': ['VAT_DEFAULT_PCT'], 'Value': ['7']}).to_excel(
                writer, sheet_name='Pricing_Params', index=False
            )

        store = WorkbookTableStore(path, settings=settings)
        assert store.read_all_rows().rows == [['HM-1', ''], ['HM-2', '']]

        store.bulk_overwrite('FinalPriceList', 2, [['HM-1', '20.00'], ['HM-2', '18.50']])
        assert store.read_all_rows().rows == [['HM-1', '20.00'], ['HM-2', '18.50']]
        assert store.read_parameters() == [{'ParamKey': 'VAT_DEFAULT_PCT', 'Value': '7'}]

    def test_missing_workbook_is_empty(self, tmp_path, settings):
        store = WorkbookTableStore(tmp_path / 'absent.xlsx', settings=settings)
        assert store.read_all_rows().headers == []


def test_create_store(settings):
    assert isinstance(create_store(settings), CsvTableStore)
    settings.store_backend = 'xlsx'
    assert isinstance(create_store(settings), WorkbookTableStore)
    settings.store_backend = 'ftp'
    with pytest.raises(StoreError):
        create_store(settings)
