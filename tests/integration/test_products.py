"""
Integration tests for the product catalog.
"""

import pytest
from decimal import Decimal

from inventory.exceptions import ValidationError, ProductNotFoundError
from inventory.models import StockTransaction, StockTransactionType
from inventory.services import product_service, stock_service


class TestCreateProduct:

    def test_opening_balance_goes_through_ledger(self, session, staff_user):
        product = product_service.create_product(
            session, sku='DRL-001', name='Drill', category='Tools',
            unit_price='99.90', min_stock=5, max_stock=40, initial_stock=12, user_id=staff_user.id
        )

        assert product.current_stock == 12
        assert product.unit_price == Decimal('99.90')
        row = session.query(StockTransaction).filter_by(product_id=product.id).one()
        assert row.transaction_type == StockTransactionType.ADJUSTMENT
        assert row.signed_quantity == 12
        assert row.notes == 'Opening balance'
        assert stock_service.get_ledger_balance(session, product.id) == 12

    def test_without_initial_stock(self, session):
        product = product_service.create_product(session, sku='EMPTY-1', name='Empty', category='Tools')
        assert product.current_stock == 0
        assert session.query(StockTransaction).count() == 0

    def test_duplicate_sku(self, session, product):
        with pytest.raises(ValidationError):
            product_service.create_product(session, sku=product.sku, name='Copy', category='Tools')

    def test_max_below_min(self, session):
        with pytest.raises(ValidationError):
            product_service.create_product(
                session, sku='BAD-1', name='Bad', category='Tools', min_stock=10, max_stock=5
            )

    @pytest.mark.parametrize('field, value', [
        ('min_stock', -1), ('initial_stock', -3), ('unit_price', '-0.01'), ('min_stock', 'ten'),
        ('sku', 123), ('name', 42), ('category', 7), ('description', ['x']),
        ('min_stock', 2 ** 31), ('initial_stock', 10 ** 20), ('unit_price', '1e30'), ('supplier_id', 10 ** 20),
    ])
    def test_invalid_values(self, session, field, value):
        kwargs = {'sku': 'BAD-2', 'name': 'Bad', 'category': 'Tools', field: value}
        with pytest.raises(ValidationError):
            product_service.create_product(session, **kwargs)

    def test_required_fields(self, session):
        with pytest.raises(ValidationError):
            product_service.create_product(session, sku='  ', name='No SKU', category='Tools')


class TestUpdateAndDelete:

    def test_update_fields(self, session, product):
        updated = product_service.update_product(session, product.id, name='Hammer Drill', min_stock=20)
        assert updated.name == 'Hammer Drill'
        assert updated.to_dict()['status'] == 'normal'

    def test_balance_is_read_only(self, session, product):
        with pytest.raises(ValidationError):
            product_service.update_product(session, product.id, current_stock=999)
        session.expire_all()
        assert product_service.get_product(session, product.id).current_stock == 50

    def test_sku_taken_by_other_product(self, session, product, make_product):
        other = make_product()
        with pytest.raises(ValidationError):
            product_service.update_product(session, other.id, sku=product.sku)

    def test_non_text_name_rejected(self, session, product):
        with pytest.raises(ValidationError):
            product_service.update_product(session, product.id, name=42)
        assert product_service.get_product(session, product.id).name == 'Cordless Drill'

    def test_keeping_own_sku(self, session, product):
        updated = product_service.update_product(session, product.id, sku=product.sku, category='Power Tools')
        assert updated.category == 'Power Tools'

    def test_soft_delete(self, session, product):
        product_service.delete_product(session, product.id)

        with pytest.raises(ProductNotFoundError):
            product_service.get_product(session, product.id)
        assert product_service.get_product(session, product.id, include_inactive=True).active is False
        # History survives
        assert stock_service.get_ledger_balance(session, product.id) == 50


class TestListing:

    @pytest.fixture
    def catalog(self, make_product):
        return [
            make_product(current_stock=0, min_stock=10, name='Anchor Bolt', category='Fasteners', unit_price='0.50'),
            make_product(current_stock=4, min_stock=10, name='Box Nails', category='Fasteners', unit_price='3.00'),
            make_product(current_stock=8, min_stock=10, name='Chisel', category='Tools', unit_price='12.00'),
            make_product(current_stock=30, min_stock=10, name='Drill Bit Set', category='Tools', unit_price='25.00'),
        ]

    def test_pagination_and_sorting(self, session, catalog):
        page = product_service.list_products(session, page=1, limit=3, sort_by='name')
        assert page['count'] == 4
        assert [p.name for p in page['items']] == ['Anchor Bolt', 'Box Nails', 'Chisel']

        page = product_service.list_products(session, page=2, limit=3, sort_by='name')
        assert [p.name for p in page['items']] == ['Drill Bit Set']

        page = product_service.list_products(session, sort_by='current_stock', sort_order='desc')
        assert page['items'][0].name == 'Drill Bit Set'

    def test_search_and_category(self, session, catalog):
        page = product_service.list_products(session, search='bolt')
        assert [p.name for p in page['items']] == ['Anchor Bolt']

        page = product_service.list_products(session, category='Tools')
        assert page['count'] == 2

        assert [p.name for p in product_service.search_products(session, 'CHIS')] == ['Chisel']

    @pytest.mark.parametrize('kwargs', [
        {'page': 0}, {'limit': 0}, {'limit': 1000}, {'sort_by': 'password'}, {'sort_order': 'sideways'},
        {'page': 2 ** 62},
    ])
    def test_invalid_listing_arguments(self, session, kwargs):
        with pytest.raises(ValidationError):
            product_service.list_products(session, **kwargs)

    def test_low_stock_most_severe_first(self, session, catalog):
        names = [p.name for p in product_service.get_low_stock_products(session)]
        assert names == ['Anchor Bolt', 'Box Nails', 'Chisel']

    def test_out_of_stock(self, session, catalog):
        assert [p.name for p in product_service.get_out_of_stock_products(session)] == ['Anchor Bolt']

    def test_count_by_category(self, session, catalog):
        assert product_service.get_product_count_by_category(session) == {'Fasteners': 2, 'Tools': 2}

    def test_sku_exists(self, session, product):
        assert product_service.sku_exists(session, product.sku)
        assert not product_service.sku_exists(session, product.sku, exclude_id=product.id)
        assert not product_service.sku_exists(session, 'NOPE')
        with pytest.raises(ValidationError):
            product_service.sku_exists(session, 123)
