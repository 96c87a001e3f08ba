"""
Test helper functions and factory methods for the Storefront backend.
"""

from typing import Dict, Any, List
from dataclasses import dataclass, field

from shared.config import ServiceConfig


@dataclass
class TestUser:
    """Test principal data."""
    __test__ = False

    user_id: str
    api_key: str
    roles: List[str] = field(default_factory=list)


class TestDataFactory:
    """Factory for creating test data."""
    __test__ = False

    @staticmethod
    def create_test_users() -> List[TestUser]:
        """Create test principals."""
        return [
            TestUser(user_id="customer-1", api_key="customer-key-123", roles=["customer"]),
            TestUser(user_id="admin-1", api_key="admin-key-456", roles=["admin"]),
        ]

    @staticmethod
    def api_keys() -> Dict[str, Dict[str, Any]]:
        """API key mapping matching :meth:`create_test_users`."""
        return {
            user.api_key: {"user_id": user.user_id, "roles": user.roles}
            for user in TestDataFactory.create_test_users()
        }

    @staticmethod
    def create_test_products() -> List[Dict[str, Any]]:
        """Create test products."""
        return [
            {
                "_id": "prod-001",
                "name": "Wireless Gaming Mouse",
                "slug": "wireless-gaming-mouse",
                "price": 149.0,
                "offerPrice": 129.0,
                "brand": {"_id": "brand-01", "name": "Logitech"},
                "category": {"_id": "cat-01", "name": "Accessories"},
                "tags": ["gaming", "wireless"],
                "countInStock": 25,
            },
            {
                "_id": "prod-002",
                "name": "27in 4K Monitor",
                "slug": "27in-4k-monitor",
                "price": 1299.0,
                "offerPrice": None,
                "brand": {"_id": "brand-02", "name": "Dell"},
                "category": {"_id": "cat-02", "name": "Monitors"},
                "tags": [],
                "countInStock": 4,
            },
        ]

    @staticmethod
    def create_test_categories() -> List[Dict[str, Any]]:
        """Create test categories."""
        return [
            {"_id": "cat-01", "name": "Accessories", "slug": "accessories", "isActive": True},
            {"_id": "cat-02", "name": "Monitors", "slug": "monitors", "isActive": True},
        ]


class TestEnvironment:
    """Test environment setup utilities."""
    __test__ = False

    @staticmethod
    def get_mock_config(**overrides) -> ServiceConfig:
        """Service configuration that never touches Redis or the environment's keys."""
        values: Dict[str, Any] = {
            "env": "test",
            "log_level": "warning",
            "redis_url": None,
            "cache_prefix": "graba2z",
            "api_keys": TestDataFactory.api_keys(),
        }
        values.update(overrides)
        return ServiceConfig("storefront", 5000, **values)
