"""
Tests for return requests against delivered orders.
"""

from uuid import uuid4

import pytest

from fulfillment_kernel.domain.actor import ActorContext, Role
from fulfillment_kernel.domain.dtos import OrderLineInput
from fulfillment_kernel.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
)


class TestCreateReturn:

    def test_return_walks_to_completion(self, coordinator, catalog, order_flow, customer, warehouse):
        order_id = order_flow([OrderLineInput(catalog.p1, 4)])
        stock_before = coordinator.ledger_query(warehouse, catalog.p1, catalog.w1)

        request = coordinator.create_return(customer, order_id, catalog.p1, 2, "damaged in transit")
        assert request.status == "pending"
        assert request.reason == "damaged in transit"

        for status in ("approved", "processing", "completed"):
            coordinator.transition(warehouse, "return_request", request.id, status)

        assert coordinator.replay_status(warehouse, "return_request", request.id) == "completed"
        # Returned goods are not restocked.
        assert coordinator.ledger_query(warehouse, catalog.p1, catalog.w1) == stock_before

    def test_order_must_be_delivered(self, coordinator, catalog, order_flow, customer):
        order_id = order_flow(until="in_transit")
        with pytest.raises(InvalidTransitionError, match="only delivered orders"):
            coordinator.create_return(customer, order_id, catalog.p1, 1, "changed my mind")

    def test_only_the_ordering_customer(self, coordinator, catalog, order_flow, admin):
        order_id = order_flow()
        stranger = ActorContext(uuid4(), Role.CUSTOMER)
        with pytest.raises(UnauthorizedError):
            coordinator.create_return(stranger, order_id, catalog.p1, 1, "not mine")
        assert coordinator.create_return(admin, order_id, catalog.p1, 1, "goodwill").status == "pending"

    def test_product_must_be_on_the_order(self, coordinator, catalog, order_flow, customer):
        order_id = order_flow([OrderLineInput(catalog.p1, 1)])
        with pytest.raises(NotFoundError):
            coordinator.create_return(customer, order_id, catalog.p2, 1, "wrong item")

    def test_cannot_return_more_than_ordered(self, coordinator, catalog, order_flow, customer, warehouse):
        order_id = order_flow([OrderLineInput(catalog.p1, 3)])
        first = coordinator.create_return(customer, order_id, catalog.p1, 2, "broken")

        with pytest.raises(ValueError, match="already requested"):
            coordinator.create_return(customer, order_id, catalog.p1, 2, "broken too")

        coordinator.transition(warehouse, "return_request", first.id, "rejected")
        second = coordinator.create_return(customer, order_id, catalog.p1, 3, "all broken")
        assert second.quantity == 3

    def test_reason_required(self, coordinator, catalog, order_flow, customer):
        order_id = order_flow()
        with pytest.raises(ValueError):
            coordinator.create_return(customer, order_id, catalog.p1, 1, "")

    def test_customer_cannot_approve(self, coordinator, catalog, order_flow, customer):
        order_id = order_flow()
        request = coordinator.create_return(customer, order_id, catalog.p1, 1, "scratched")
        with pytest.raises(UnauthorizedError):
            coordinator.transition(customer, "return_request", request.id, "approved")
