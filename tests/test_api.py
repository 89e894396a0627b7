"""
Tests for the rewards and admin HTTP endpoints.

Covers:
- Bearer token authentication
- Self-or-admin, staff and admin authorization
- Error response shape for domain, HTTP and unexpected errors
- Happy paths for earning, redemption fulfillment and admin tools
"""
from unittest.mock import patch

import jwt


def error_of(response):
    return response.get_json()['error']


class TestAuthentication:
    """Caller identity is required on every rewards route."""

    def test_missing_token(self, client):
        response = client.get('/api/rewards/profile')
        assert response.status_code == 401
        assert error_of(response) == {'message': 'Authentication required', 'code': 'UNAUTHENTICATED'}

    def test_expired_token(self, client, make_token):
        token = make_token('user-alice', expires_in=-60)
        response = client.get('/api/rewards/profile', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401

    def test_token_signed_with_wrong_key(self, client):
        token = jwt.encode({'sub': 'user-alice'}, 'not-the-key', algorithm='HS256')
        response = client.get('/api/rewards/profile', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401

    def test_token_without_subject(self, client, app):
        token = jwt.encode({'admin': True}, app.config['JWT_SECRET_KEY'], algorithm='HS256')
        response = client.get('/api/admin/analytics', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401

    def test_health_is_public(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'healthy'


class TestEarnEndpoint:
    """Tests for POST /api/rewards/earn."""

    def test_earn_for_self(self, client, auth_headers):
        response = client.post(
            '/api/rewards/earn',
            json={'points': 120, 'order_id': 'A-1001'},
            headers=auth_headers('user-alice'),
        )
        assert response.status_code == 200
        data = response.get_json()
        assert data['points_awarded'] == 120
        assert data['new_balance'] == 120

    def test_earn_for_someone_else_denied(self, client, auth_headers):
        response = client.post(
            '/api/rewards/earn',
            json={'user_id': 'user-bob', 'points': 120},
            headers=auth_headers('user-alice'),
        )
        assert response.status_code == 403
        assert error_of(response)['code'] == 'PERMISSION_DENIED'

    def test_admin_can_earn_for_anyone(self, client, admin_headers):
        response = client.post(
            '/api/rewards/earn',
            json={'user_id': 'user-bob', 'points': 40},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.get_json()['new_balance'] == 40

    def test_invalid_points(self, client, auth_headers):
        response = client.post('/api/rewards/earn', json={'points': 0}, headers=auth_headers())
        assert response.status_code == 400
        assert error_of(response)['code'] == 'INVALID_ARGUMENT'

    def test_rate_limited(self, client, auth_headers):
        headers = auth_headers()
        for i in range(10):
            response = client.post('/api/rewards/earn', json={'points': 1}, headers=headers)
            assert response.status_code == 200
        response = client.post('/api/rewards/earn', json={'points': 1}, headers=headers)
        assert response.status_code == 429
        assert error_of(response)['code'] == 'RESOURCE_EXHAUSTED'


class TestProfileAndHistory:
    def test_profile_created_on_first_read(self, client, auth_headers):
        response = client.get('/api/rewards/profile', headers=auth_headers('user-carol'))
        assert response.status_code == 200
        data = response.get_json()
        assert data['points'] == 0
        assert data['tier'] == 'bronze'

    def test_history_pagination(self, client, auth_headers):
        headers = auth_headers()
        for i in range(3):
            client.post('/api/rewards/earn', json={'points': 10, 'order_id': f'H-{i}'}, headers=headers)

        response = client.get('/api/rewards/history?page=1&per_page=2', headers=headers)
        assert response.status_code == 200
        data = response.get_json()
        assert data['total'] == 3
        assert len(data['transactions']) == 2

    def test_history_type_filter(self, client, auth_headers, admin_headers):
        headers = auth_headers()
        client.post('/api/rewards/earn', json={'points': 30}, headers=headers)
        client.post(
            '/api/admin/adjust-points',
            json={'target_user_id': 'user-alice', 'points_delta': 5, 'reason': 'Goodwill'},
            headers=admin_headers,
        )

        response = client.get('/api/rewards/history?type=earned', headers=headers)
        data = response.get_json()
        assert data['total'] == 1
        assert data['transactions'][0]['type'] == 'earned'

        response = client.get('/api/rewards/history?start_date=yesterday', headers=headers)
        assert response.status_code == 400

    def test_other_members_history_denied(self, client, auth_headers):
        response = client.get('/api/rewards/history?user_id=user-bob', headers=auth_headers())
        assert response.status_code == 403


class TestCouponEndpoints:
    """Redemption codes are fulfilled by staff."""

    def _redeem(self, client, auth_headers, make_profile, make_reward):
        make_profile('user-alice', points=500)
        make_reward('sticker', 100, '0.05')
        response = client.post(
            '/api/rewards/redeem',
            json={'reward_id': 'sticker', 'points': 100},
            headers=auth_headers('user-alice'),
        )
        assert response.status_code == 200
        return response.get_json()['redemption_code']

    def test_staff_marks_code_used(self, client, auth_headers, make_profile, make_reward):
        code = self._redeem(client, auth_headers, make_profile, make_reward)
        staff = auth_headers('staff-sam', role='staff')

        response = client.post('/api/rewards/coupons/validate', json={'redemption_code': code}, headers=staff)
        assert response.get_json()['valid'] is True

        response = client.post(
            '/api/rewards/coupons/mark-used',
            json={'redemption_code': code.lower(), 'order_id': 'POS-77'},
            headers=staff,
        )
        assert response.status_code == 200
        assert response.get_json()['user_id'] == 'user-alice'

        response = client.post('/api/rewards/coupons/mark-used', json={'redemption_code': code}, headers=staff)
        assert response.status_code == 400
        assert error_of(response)['code'] == 'FAILED_PRECONDITION'

    def test_member_cannot_mark_used(self, client, auth_headers, make_profile, make_reward):
        code = self._redeem(client, auth_headers, make_profile, make_reward)
        response = client.post(
            '/api/rewards/coupons/mark-used',
            json={'redemption_code': code},
            headers=auth_headers('user-alice'),
        )
        assert response.status_code == 403

    def test_member_lists_own_codes(self, client, auth_headers, make_profile, make_reward):
        code = self._redeem(client, auth_headers, make_profile, make_reward)

        response = client.get('/api/rewards/redemptions?status=active', headers=auth_headers('user-alice'))
        assert response.status_code == 200
        data = response.get_json()
        assert data['count'] == 1
        assert data['redemptions'][0]['redemption_code'] == code

        response = client.get('/api/rewards/redemptions?user_id=user-alice', headers=auth_headers('user-bob'))
        assert response.status_code == 403

    def test_unknown_code(self, client, auth_headers):
        response = client.post(
            '/api/rewards/coupons/mark-used',
            json={'redemption_code': 'NOPE1234'},
            headers=auth_headers('staff-sam', role='staff'),
        )
        assert response.status_code == 404
        assert error_of(response)['code'] == 'NOT_FOUND'


class TestMemberEndpoints:
    def test_catalog(self, client, auth_headers):
        response = client.get('/api/rewards/catalog', headers=auth_headers())
        data = response.get_json()
        assert response.status_code == 200
        assert data['count'] == len(data['rewards']) > 0

    def test_set_birthday(self, client, auth_headers):
        response = client.put('/api/rewards/birthday', json={'month': 7, 'day': 4}, headers=auth_headers())
        assert response.status_code == 200
        assert response.get_json()['birthday'] == '07-04'

    def test_referral_code(self, client, auth_headers):
        response = client.get('/api/rewards/referrals/code', headers=auth_headers())
        assert response.status_code == 200
        assert response.get_json()['referral_code'].startswith('USER')

    def test_spin(self, client, auth_headers):
        headers = auth_headers()
        assert client.post('/api/rewards/spin', headers=headers).status_code == 200
        response = client.post('/api/rewards/spin', headers=headers)
        assert response.status_code == 400
        assert error_of(response)['code'] == 'FAILED_PRECONDITION'

        response = client.get('/api/rewards/spins', headers=headers)
        assert response.status_code == 200
        data = response.get_json()
        assert len(data['spins']) == 1
        assert data['can_spin_today'] is False


class TestAdminEndpoints:
    def test_member_denied(self, client, auth_headers):
        response = client.get('/api/admin/analytics', headers=auth_headers('user-alice'))
        assert response.status_code == 403
        assert error_of(response)['message'] == 'Admin privileges required'

    def test_admin_from_identity_directory(self, client, auth_headers):
        # admin-ada is an admin in the identity directory even without a token claim
        response = client.get('/api/admin/analytics?days=7', headers=auth_headers('admin-ada'))
        assert response.status_code == 200
        assert response.get_json()['period_days'] == 7

    def test_adjust_points(self, client, admin_headers, make_profile):
        make_profile('user-bob', points=50)
        response = client.post(
            '/api/admin/adjust-points',
            json={'target_user_id': 'user-bob', 'points_delta': -80, 'reason': 'Chargeback'},
            headers=admin_headers,
        )
        assert response.status_code == 200
        data = response.get_json()
        assert data['new_balance'] == 0
        assert data['applied_delta'] == -50

    def test_elevate(self, client, admin_headers):
        response = client.post('/api/admin/elevate', json={'target_uid': 'user-carol'}, headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json()['custom_claims']['admin'] is True

    def test_birthday_run(self, client, admin_headers, make_profile):
        make_profile('user-alice', birthday='12-25')
        response = client.post('/api/admin/birthday/run', json={'date': '2026-12-25'}, headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json()['users_processed'] == 1

    def test_birthday_run_bad_date(self, client, admin_headers):
        response = client.post('/api/admin/birthday/run', json={'date': '25/12/2026'}, headers=admin_headers)
        assert response.status_code == 400

    def test_ledger_verify(self, client, admin_headers, make_profile):
        make_profile('user-alice', points=300)
        response = client.get('/api/admin/ledger/verify', headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json() == {'consistent': True, 'mismatches': []}


class TestErrorShape:
    def test_unknown_route(self, client):
        response = client.get('/api/rewards/does-not-exist')
        assert response.status_code == 404
        assert error_of(response)['code'] == 'NOT_FOUND'

    def test_unexpected_error_is_generic(self, client, auth_headers):
        with patch(
            'loyalty_ledger.api.rewards.PointsService.get_profile',
            side_effect=RuntimeError('connection to db-primary:5432 refused'),
        ):
            response = client.get('/api/rewards/profile', headers=auth_headers())

        assert response.status_code == 500
        assert error_of(response) == {'message': 'An unexpected error occurred', 'code': 'INTERNAL'}
        assert b'db-primary' not in response.data
