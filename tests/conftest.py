"""
Shared pytest fixtures for the loyalty ledger tests.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import jwt
import pytest

from loyalty_ledger import create_app
from loyalty_ledger.extensions import db
from loyalty_ledger.models import (
    LoyaltyProfile,
    PointsTransaction,
    RewardCatalogItem,
    TransactionType,
)
from loyalty_ledger.services.redemption_service import RedemptionService
from loyalty_ledger.services.tier_service import calculate_tier

TEST_USERS = {
    'user-alice': {'email': 'alice@example.com'},
    'user-bob': {'email': 'bob@example.com'},
    'user-carol': {'email': 'carol@example.com'},
    'staff-sam': {'email': 'sam@example.com', 'custom_claims': {'role': 'staff'}},
    'admin-ada': {'email': 'ada@example.com', 'custom_claims': {'admin': True}},
}


@pytest.fixture
def app():
    """Testing app with an in-memory database, seeded catalog and known users."""
    app = create_app('testing', overrides={'IDENTITY_USERS': TEST_USERS})

    with app.app_context():
        db.create_all()
        RedemptionService().seed_catalog()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_token(app):
    """Sign a caller token the way the identity provider would."""
    def _make_token(uid, expires_in=3600, **claims):
        payload = {
            'sub': uid,
            'iat': datetime.utcnow(),
            'exp': datetime.utcnow() + timedelta(seconds=expires_in),
            **claims,
        }
        return jwt.encode(payload, app.config['JWT_SECRET_KEY'], algorithm='HS256')
    return _make_token


@pytest.fixture
def auth_headers(make_token):
    def _auth_headers(uid='user-alice', **claims):
        return {'Authorization': f'Bearer {make_token(uid, **claims)}'}
    return _auth_headers


@pytest.fixture
def admin_headers(auth_headers):
    return auth_headers('admin-ada', admin=True)


@pytest.fixture
def make_profile(app):
    """
    Create a profile with an opening balance.

    The balance is backed by a single ledger entry so replaying the ledger
    still reproduces it.
    """
    def _make_profile(user_id='user-alice', points=0, lifetime_points=None, **fields):
        lifetime = points if lifetime_points is None else lifetime_points
        with app.app_context():
            profile = LoyaltyProfile(
                user_id=user_id,
                points=points,
                lifetime_points=lifetime,
                tier=calculate_tier(lifetime),
                lifetime_spins=0,
                **fields,
            )
            db.session.add(profile)
            if points:
                db.session.add(PointsTransaction(
                    user_id=user_id,
                    delta=points,
                    type=TransactionType.EARNED.value,
                    description='Opening balance',
                ))
            db.session.commit()
            return user_id
    return _make_profile


@pytest.fixture
def make_reward(app):
    """Add a catalog item with a chosen cost and COGS."""
    def _make_reward(reward_id, points_cost, cogs, tier_restrictions=None):
        with app.app_context():
            db.session.add(RewardCatalogItem(
                id=reward_id,
                name=reward_id.replace('_', ' ').title(),
                reward_type='free_item',
                points_cost=points_cost,
                max_cogs_value=Decimal(str(cogs)),
                tier_restrictions=tier_restrictions or [],
                is_active=True,
                sort_order=99,
            ))
            db.session.commit()
            return reward_id
    return _make_reward


@pytest.fixture
def file_app(tmp_path):
    """Like ``app`` but on a SQLite file, so separate connections see each other's commits."""
    app = create_app('testing', overrides={
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'ledger.db'}",
        'IDENTITY_USERS': TEST_USERS,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()
