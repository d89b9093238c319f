"""
Subscription and payment repository.

Payment endpoints answer `{"success": bool, ...}`; a false flag is treated
as a failure even on a 2xx status. Card entry itself happens outside this
client: it only creates intents and confirms or charges saved cards.
"""

from dataclasses import replace
from typing import Any, Dict, List, Optional
import logging

from shared.constants import ENDPOINTS
from shared.exceptions import ApiError, SoundspotsError
from shared.models import PaymentIntent, PaymentMethod, SubscriptionPlan, SubscriptionStatus

from .base import Repository, parse_collection

logger = logging.getLogger(__name__)


def _expect_success(data: Any, default_message: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ApiError(default_message)
    if data.get("success") is False:
        raise ApiError(data.get("message") or default_message, details=data)
    return data


def _parse_plans(data: Any) -> List[SubscriptionPlan]:
    plans = data.get("plans") if isinstance(data, dict) else data
    if isinstance(plans, dict):
        # Keyed by plan type: {"monthly": {...}, "lifetime": {...}}
        return [SubscriptionPlan.from_dict(p, plan_id=k) for k, p in plans.items() if isinstance(p, dict)]
    if isinstance(plans, list):
        return [SubscriptionPlan.from_dict(p) for p in plans if isinstance(p, dict)]
    return []


class SubscriptionRepository(Repository):
    """Plans, access status and saved payment methods."""

    def __init__(self, api, session):
        super().__init__(api, session)
        self.plans: List[SubscriptionPlan] = []
        self.payment_methods: List[PaymentMethod] = []
        self.status = SubscriptionStatus()

    def reset_user_data(self) -> None:
        self._replace("payment_methods", [])
        with self._lock:
            self.status = SubscriptionStatus()

    def fetch_plans(self) -> List[SubscriptionPlan]:
        with self._operation():
            data = self.api.get(ENDPOINTS["SUBSCRIPTION_PLANS"], authenticated=False,
                                default_message="Failed to load subscription plans")
            plans = _parse_plans(_expect_success(data, "Failed to load subscription plans"))
            self._replace("plans", plans)
            return plans

    def check_access(self) -> SubscriptionStatus:
        """
        Refresh the access status.

        On any failure the status falls back to no access, the error is
        recorded and the failure is re-raised.
        """
        try:
            with self._operation():
                self._require_login()
                data = self.api.get(ENDPOINTS["SUBSCRIPTION_CHECK_ACCESS"],
                                    default_message="Failed to check subscription status")
                status = SubscriptionStatus.from_dict(
                    _expect_success(data, "Failed to check subscription status"))
        except SoundspotsError:
            with self._lock:
                self.status = SubscriptionStatus()
            self._notify_change()
            raise

        with self._lock:
            if not self._closed:
                self.status = status
        self._notify_change()
        return status

    def get_current_subscription(self) -> Optional[Dict[str, Any]]:
        """Return the active subscription record, or None when there is none or the call fails."""
        if not self.session.is_logged_in:
            return None
        try:
            data = self.api.get(ENDPOINTS["SUBSCRIPTION_CURRENT"],
                                default_message="Failed to get current subscription")
            data = _expect_success(data, "Failed to get current subscription")
        except SoundspotsError as e:
            logger.warning("Error getting current subscription: %s", e.message)
            return None
        subscription = data.get("subscription")
        return subscription if isinstance(subscription, dict) else None

    # Payments

    def create_payment_intent(self, plan_type: str) -> PaymentIntent:
        with self._operation():
            self._require_login()
            data = self.api.post(ENDPOINTS["SUBSCRIPTION_PAYMENT_INTENT"], json={"planType": plan_type},
                                 default_message="Failed to create payment intent")
            return PaymentIntent.from_dict(_expect_success(data, "Failed to create payment intent"))

    def confirm_payment(self, payment_intent_id: str) -> Dict[str, Any]:
        with self._operation():
            self._require_login()
            data = self.api.post(ENDPOINTS["SUBSCRIPTION_CONFIRM_PAYMENT"],
                                 json={"paymentIntentId": payment_intent_id},
                                 default_message="Failed to confirm payment")
            data = _expect_success(data, "Failed to confirm payment")
            logger.info("Payment %s confirmed", payment_intent_id)
            return data

    def subscribe_with_saved_card(self, plan_type: str, payment_method_id: str) -> Dict[str, Any]:
        """Charge a saved card for a plan. `payment_method_id` is the card's Stripe id."""
        with self._operation():
            self._require_login()
            data = self.api.post(ENDPOINTS["SUBSCRIPTION_SAVED_CARD"],
                                 json={"planType": plan_type, "paymentMethodId": payment_method_id},
                                 default_message="Failed to process payment. Please try again.")
            data = _expect_success(data, "Failed to process payment. Please try again.")
            logger.info("Subscribed to %s with saved card", plan_type)
            return data

    # Saved cards

    def fetch_payment_methods(self) -> List[PaymentMethod]:
        if not self.session.is_logged_in:
            return []
        with self._operation():
            data = self.api.get(ENDPOINTS["PAYMENT_METHODS"],
                                default_message="Failed to load payment methods")
            data = _expect_success(data, "Failed to load payment methods")
            methods = parse_collection(data, PaymentMethod, "paymentMethods")
            self._replace("payment_methods", methods)
            return methods

    def set_default_payment_method(self, method_id: str) -> None:
        with self._operation():
            self._require_login()
            data = self.api.put(f"{ENDPOINTS['PAYMENT_METHODS']}/{method_id}/default",
                                default_message="Failed to set default payment method")
            _expect_success(data or {}, "Failed to set default payment method")
            self._update("payment_methods", lambda methods: [
                replace(m, is_default=m.id == method_id) for m in methods
            ])

    def delete_payment_method(self, method_id: str) -> None:
        with self._operation():
            self._require_login()
            data = self.api.delete(f"{ENDPOINTS['PAYMENT_METHODS']}/{method_id}",
                                   default_message="Failed to delete payment method")
            _expect_success(data or {}, "Failed to delete payment method")
            self._remove_everywhere(("payment_methods",), method_id)
