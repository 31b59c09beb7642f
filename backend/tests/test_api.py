"""
HTTP-level tests: envelopes, auth guards and the main customer/staff flows
through the Flask test client.
"""

import pytest

from bookstore.models import Order

from conftest import PASSWORD, StaticRouteProvider, auth_headers, get_auth_token


class TestEnvelope:

    def test_success_envelope(self, client, product):
        response = client.get(f'/api/products/{product.id}')

        assert response.status_code == 200
        body = response.json
        assert body['success'] is True
        assert body['code'] == 1000
        assert body['data']['sku'] == product.sku

    def test_error_envelope(self, client, db_session):
        response = client.get('/api/products/999')

        assert response.status_code == 404
        body = response.json
        assert body['success'] is False
        assert body['error']['name'] == 'PRODUCT_NOT_FOUND'
        assert body['error']['details'] == {'product_id': 999}

    def test_unknown_route_uses_envelope(self, client, db_session):
        response = client.get('/api/nope')
        assert response.status_code == 404
        assert response.json['error']['name'] == 'RESOURCE_NOT_FOUND'

    def test_cors_only_for_allowed_origins(self, client, db_session):
        allowed = client.get('/api/products', headers={'Origin': 'http://localhost:5173'})
        other = client.get('/api/products', headers={'Origin': 'http://evil.example'})

        assert allowed.headers['Access-Control-Allow-Origin'] == 'http://localhost:5173'
        assert 'Access-Control-Allow-Origin' not in other.headers


class TestAuthGuards:

    def test_missing_token(self, client, db_session):
        response = client.get('/api/cart')
        assert response.status_code == 401
        assert response.json['error']['name'] == 'UNAUTHENTICATED'

    def test_garbage_token(self, client, db_session):
        response = client.get('/api/cart', headers={'Authorization': 'Bearer nope'})
        assert response.status_code == 401

    @pytest.mark.parametrize(
        "method,path",
        [
            ('get', '/api/inventory/consistency'),
            ('get', '/api/reports/revenue'),
            ('get', '/api/orders'),
            ('post', '/api/products'),
        ],
    )
    def test_customer_blocked_from_staff_routes(self, client, customer, method, path):
        response = getattr(client, method)(path, headers=auth_headers(customer), json={})
        assert response.status_code == 403
        assert response.json['error']['name'] == 'UNAUTHORIZED'

    def test_login_logout_roundtrip(self, client, customer):
        token = get_auth_token(client, 'alice')
        headers = {'Authorization': f'Bearer {token}'}

        me = client.get('/api/auth/me', headers=headers)
        assert me.json['data']['username'] == 'alice'

        assert client.post('/api/auth/logout', headers=headers).status_code == 200
        assert client.get('/api/auth/me', headers=headers).status_code == 401

    def test_login_wrong_password(self, client, customer):
        assert get_auth_token(client, 'alice', 'Wrong12345') is None

    def test_register_and_verify(self, client, db_session, email_sender):
        response = client.post('/api/auth/register', json={
            'username': 'dora',
            'email': 'dora@example.com',
            'password': PASSWORD,
        })
        assert response.status_code == 201

        code = email_sender.sent[-1][1]
        response = client.post('/api/auth/verify-otp', json={'email': 'dora@example.com', 'otp': code})
        assert response.status_code == 201
        assert get_auth_token(client, 'dora') is not None


class TestShoppingFlow:

    def test_cart_then_checkout(self, client, db_session, customer, product, make_voucher):
        make_voucher(code="SAVE10")
        headers = auth_headers(customer)

        added = client.post('/api/cart/items', headers=headers, json={'product_id': product.id, 'quantity': 2})
        assert added.status_code == 200
        assert added.json['data']['selected_amount'] == '200000.00'

        duplicate = client.post('/api/cart/items', headers=headers, json={'product_id': product.id})
        assert duplicate.status_code == 409
        assert duplicate.json['error']['name'] == 'PRODUCT_ALREADY_IN_CART'

        response = client.post('/api/orders/checkout', headers=headers, json={
            'payment_method': 'prepaid',
            'fulfillment_method': 'delivery',
            'voucher_code': 'SAVE10',
            'shipping_fee': '30000',
            'receiver_name': 'Alice',
            'receiver_phone': '0900000000',
            'receiver_address': '1 Library Rd',
        })

        assert response.status_code == 201
        order = response.json['data']
        assert order['total_amount'] == '210000.00'
        assert order['transfer_content'] == f"BSORD{order['id']}"
        assert client.get('/api/cart', headers=headers).json['data']['item_count'] == 0

        mine = client.get('/api/orders/mine', headers=headers).json['data']
        assert [o['id'] for o in mine['items']] == [order['id']]

    def test_checkout_rejects_non_string_voucher_code(self, client, db_session, customer, product, cart_with):
        cart_with((product, 1))
        response = client.post('/api/orders/checkout', headers=auth_headers(customer), json={
            'payment_method': 'cod',
            'fulfillment_method': 'pickup',
            'voucher_code': 123,
        })

        assert response.status_code == 400
        assert response.json['error']['name'] == 'VALIDATION_ERROR'
        assert db_session.query(Order).count() == 0

        preview = client.post('/api/vouchers/validate', headers=auth_headers(customer), json={
            'code': ['SAVE10'],
            'order_total': '100000',
        })
        assert preview.status_code == 400
        assert preview.json['error']['name'] == 'VALIDATION_ERROR'

    def test_checkout_with_empty_cart(self, client, customer):
        response = client.post('/api/orders/checkout', headers=auth_headers(customer), json={
            'payment_method': 'cod',
            'fulfillment_method': 'pickup',
        })
        assert response.status_code == 400
        assert response.json['error']['name'] == 'CART_EMPTY'

    def test_other_customer_cannot_read_order(self, client, customer, other_customer, product, cart_with):
        cart_with((product, 1))
        headers = auth_headers(customer)
        order_id = client.post('/api/orders/checkout', headers=headers, json={
            'payment_method': 'cod', 'fulfillment_method': 'pickup',
        }).json['data']['id']

        response = client.get(f'/api/orders/{order_id}', headers=auth_headers(other_customer))

        assert response.status_code == 403
        assert response.json['error']['name'] == 'ORDER_ACCESS_DENIED'


class TestStaffFlow:

    def _order(self, client, customer, product, cart_with):
        cart_with((product, 1))
        return client.post('/api/orders/checkout', headers=auth_headers(customer), json={
            'payment_method': 'cod', 'fulfillment_method': 'pickup',
        }).json['data']['id']

    def test_patch_status_and_reject_bad_transition(self, client, db_session, customer, manager, product, cart_with):
        order_id = self._order(client, customer, product, cart_with)
        staff = auth_headers(manager)

        paid = client.patch(f'/api/orders/{order_id}/status', headers=staff, json={
            'payment_status': 'paid', 'fulfillment_status': 'delivered',
        })
        assert paid.status_code == 200
        assert paid.json['data']['payment_status'] == 'paid'

        bad = client.patch(f'/api/orders/{order_id}/status', headers=staff, json={'payment_status': 'pending'})
        assert bad.status_code == 409
        assert bad.json['error']['name'] == 'INVALID_STATUS_TRANSITION'

        closed = client.patch(f'/api/orders/{order_id}/status', headers=staff, json={'order_status': 'closed'})
        assert closed.status_code == 200

        db_session.expire_all()
        assert db_session.get(Order, order_id).order_status == 'closed'

        invoice = client.get(f'/api/orders/{order_id}/invoice', headers=auth_headers(customer))
        assert invoice.status_code == 200

    def test_empty_status_patch(self, client, customer, manager, product, cart_with):
        order_id = self._order(client, customer, product, cart_with)
        response = client.patch(f'/api/orders/{order_id}/status', headers=auth_headers(manager), json={})
        assert response.status_code == 400

    def test_inventory_endpoints(self, client, manager, product):
        staff = auth_headers(manager)

        received = client.post('/api/inventory/transactions', headers=staff, json={
            'transaction_type': 'IN',
            'items': [{'product_id': product.id, 'quantity': 5, 'unit_price': '40000'}],
        })
        assert received.status_code == 201
        assert received.json['data']['total_quantity'] == 5

        oversell = client.post('/api/inventory/transactions', headers=staff, json={
            'transaction_type': 'OUT',
            'reference_id': 77,
            'items': [{'product_id': product.id, 'quantity': 500}],
        })
        assert oversell.status_code == 409
        assert oversell.json['error']['name'] == 'INSUFFICIENT_INVENTORY'

        stock = client.get(f'/api/inventory/stock/{product.id}', headers=staff).json['data']
        assert stock == {'product_id': product.id, 'stock_quantity': 15, 'ledger_stock': 15, 'consistent': True}

        stocktake = client.post('/api/inventory/stocktake', headers=staff, json={
            'counts': [{'product_id': product.id, 'counted': 12}],
        })
        assert stocktake.status_code == 201

        listing = client.get(f'/api/inventory/transactions?product_id={product.id}', headers=staff).json['data']
        assert listing['total'] == 3

        consistency = client.get('/api/inventory/consistency', headers=staff).json['data']
        assert consistency == {'consistent': True, 'drift': []}

    def test_reports_reachable(self, client, manager):
        response = client.get('/api/reports/revenue?group_by=month', headers=auth_headers(manager))
        assert response.status_code == 200
        assert response.json['data']['total_revenue'] == '0.00'

        bad = client.get('/api/reports/revenue?group_by=week', headers=auth_headers(manager))
        assert bad.status_code == 400


class TestPublicEndpoints:

    def test_health(self, client, db_session):
        response = client.get('/api/system/health')

        assert response.status_code == 200
        body = response.json
        assert body['status'] == 'healthy'
        assert set(body['checks']) == {'database', 'session_service', 'inventory'}

    def test_shipping_quote(self, app, client, db_session):
        app.config['ROUTE_PROVIDER'] = StaticRouteProvider({'1 Library Rd': 7})

        response = client.post('/api/shipping/quote', json={'subtotal': '100000', 'address': '1 Library Rd'})

        assert response.status_code == 200
        assert response.json['data']['total_fee'] == '21000.00'

    def test_shipping_quote_unknown_address(self, app, client, db_session):
        app.config['ROUTE_PROVIDER'] = StaticRouteProvider({})
        response = client.post('/api/shipping/quote', json={'subtotal': '100000', 'address': 'Atlantis'})
        assert response.status_code == 502
