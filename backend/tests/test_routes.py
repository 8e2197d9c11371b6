# Overview: Pytest coverage for the JSON API; session gate, CRUD status codes, dashboard and menu.

"""
API Route Tests

Exercises the blueprints through the Flask test client against the
app-level dashboard store.
"""


def _seed(client):
    category = client.post('/api/categories', json={'name': 'Breads'}).json
    product = client.post('/api/products', json={
        'name': 'Sourdough', 'price': '20.00', 'category_id': category['id'],
    }).json
    customer = client.post('/api/customers', json={'name': 'Ana', 'whatsapp': '+5511912345678'}).json
    return category, product, customer


class TestSessionGate:
    def test_requires_session(self, client, db_session):
        response = client.get('/api/categories')
        assert response.status_code == 401

    def test_open_and_close(self, client, db_session):
        response = client.post('/api/session', json={'user': 'operator'})
        assert response.status_code == 201
        assert response.json['user'] == 'operator'

        assert client.get('/api/categories').status_code == 200

        client.delete('/api/session')
        assert client.get('/api/categories').status_code == 401

    def test_open_requires_user(self, client, db_session):
        response = client.post('/api/session', json={})
        assert response.status_code == 400


class TestHealth:
    def test_health(self, client, db_session):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json['checks']['database']['status'] == 'healthy'
        assert response.json['checks']['dashboard_store']['details']['session_open'] is False


class TestCrudRoutes:
    def test_create_and_list(self, signed_in):
        category, product, customer = _seed(signed_in)

        assert product['price'] == '20.00'
        assert product['total_sold'] == 0

        listed = signed_in.get('/api/categories').json
        assert listed['count'] == 1
        assert listed['items'][0]['product_count'] == 1

    def test_validation_errors(self, signed_in):
        response = signed_in.post('/api/products', json={'name': 'No price'})
        assert response.status_code == 400

        response = signed_in.post('/api/customers', json={'name': 'Ana', 'whatsapp': 'call me'})
        assert response.status_code == 400

    def test_derived_fields_are_rejected(self, signed_in):
        category, product, customer = _seed(signed_in)
        response = signed_in.put(f"/api/customers/{customer['id']}", json={'total_spent': '999'})
        assert response.status_code == 400

    def test_unknown_ids(self, signed_in):
        assert signed_in.get('/api/products/999').status_code == 404
        assert signed_in.put('/api/products/999', json={'name': 'x'}).status_code == 404
        assert signed_in.delete('/api/customers/999').status_code == 404

    def test_guarded_category_delete(self, signed_in):
        category, product, customer = _seed(signed_in)

        response = signed_in.delete(f"/api/categories/{category['id']}")
        assert response.status_code == 409

        notes = signed_in.get('/api/notifications').json
        assert notes['items'][0]['severity'] == 'warning'

    def test_update_product_price(self, signed_in):
        category, product, customer = _seed(signed_in)

        response = signed_in.put(f"/api/products/{product['id']}", json={'price': '22.00'})
        assert response.status_code == 200
        assert [e['price'] for e in response.json['price_history']] == ['20.00', '22.00']


class TestOrderRoutes:
    def test_order_lifecycle(self, signed_in):
        category, product, customer = _seed(signed_in)

        response = signed_in.post('/api/orders', json={
            'customer_id': customer['id'],
            'delivery_fee': '5.00',
            'items': [{'product_id': product['id'], 'quantity': 2}],
        })
        assert response.status_code == 201
        order = response.json
        assert order['total'] == '45.00'
        assert order['items'][0]['product_name'] == 'Sourdough'

        ana = signed_in.get(f"/api/customers/{customer['id']}").json
        assert ana['total_orders'] == 1
        assert ana['pending_spent'] == '45.00'

        response = signed_in.put(f"/api/orders/{order['id']}", json={'status': 'cancelled'})
        assert response.status_code == 200
        assert response.json['payment_status'] == 'cancelled'

        response = signed_in.put(f"/api/orders/{order['id']}", json={'status': 'pending'})
        assert response.status_code == 400

        assert signed_in.delete(f"/api/customers/{customer['id']}").status_code == 409

    def test_totals_cannot_be_posted(self, signed_in):
        category, product, customer = _seed(signed_in)
        response = signed_in.post('/api/orders', json={
            'customer_id': customer['id'],
            'total': '1.00',
            'items': [{'product_id': product['id'], 'quantity': 1}],
        })
        assert response.status_code == 400

    def test_order_needs_items(self, signed_in):
        category, product, customer = _seed(signed_in)
        response = signed_in.post('/api/orders', json={'customer_id': customer['id']})
        assert response.status_code == 400

    def test_list_filters(self, signed_in):
        category, product, customer = _seed(signed_in)
        for _ in range(2):
            signed_in.post('/api/orders', json={
                'customer_id': customer['id'],
                'items': [{'product_id': product['id'], 'quantity': 1}],
            })

        assert signed_in.get('/api/orders').json['count'] == 2
        assert signed_in.get('/api/orders?status=delivered').json['count'] == 0
        assert signed_in.get('/api/orders?status=bogus').status_code == 400

    def test_new_order_raises_notification(self, signed_in):
        category, product, customer = _seed(signed_in)
        signed_in.post('/api/orders', json={
            'customer_id': customer['id'],
            'items': [{'product_id': product['id'], 'quantity': 1}],
        })

        titles = [n['title'] for n in signed_in.get('/api/notifications').json['items']]
        assert 'New order!' in titles
        assert 'New customer!' in titles


class TestDashboardRoutes:
    def test_dashboard_and_refresh(self, signed_in):
        category, product, customer = _seed(signed_in)
        signed_in.post('/api/orders', json={
            'customer_id': customer['id'],
            'items': [{'product_id': product['id'], 'quantity': 3}],
        })

        summary = signed_in.get('/api/dashboard').json
        assert summary['customer_count'] == 1
        assert summary['most_sold_category']['name'] == 'Breads'
        assert summary['error'] is None

        sales = signed_in.get('/api/dashboard/product-sales').json
        assert sales['items'][0]['quantity_sold'] == 3

        assert signed_in.get('/api/dashboard/performance').status_code == 200

        refreshed = signed_in.post('/api/dashboard/refresh')
        assert refreshed.status_code == 200
        assert refreshed.json['orders'] == 1


class TestNotificationRoutes:
    def test_mark_read_and_clear(self, signed_in):
        created = signed_in.post('/api/notifications', json={'title': 'Hi', 'message': 'there'}).json

        response = signed_in.post(f"/api/notifications/{created['id']}/read")
        assert response.json['read'] is True
        assert signed_in.get('/api/notifications').json['unread_count'] == 0

        assert signed_in.delete('/api/notifications/missing').status_code == 404
        signed_in.delete('/api/notifications')
        assert signed_in.get('/api/notifications').json['count'] == 0


class TestMenuRoute:
    def test_menu_is_public(self, signed_in, client):
        category, product, customer = _seed(signed_in)
        client.delete('/api/session')

        response = client.get('/api/menu')
        assert response.status_code == 200
        assert [p['name'] for p in response.json['products']] == ['Sourdough']
        assert response.json['business_name']

        assert client.get('/api/menu?category=999').status_code == 404
