# Overview: Scan-to-product state machine used when receiving stock by barcode.

"""
Barcode association flow.

STATES:
    idle -> scanning              start_scanning()
    scanning -> searching         barcode_scanned(code)
    searching -> product-found    lookup returned a product
    searching -> product-not-found
    product-found -> idle         accept_product()  (fires on_product_selected)
    product-not-found -> associating-existing   choose_associate_existing()
    product-not-found -> creating-new           choose_create_new()
    associating-existing -> idle  complete_association(product_id)
    creating-new -> idle          complete_creation(fields)
    any non-idle -> idle          cancel()

reset() always returns to idle. Any other call raises InvalidTransition.

The flow owns no persistence: lookups and writes go through a backend
object (see ServiceBarcodeBackend for the one backed by products_service).
"""
from __future__ import annotations

import enum
import logging
from typing import Any, Callable, Optional, Protocol

from .validation import NotFoundError, enforce_rules_product, validate_payload

logger = logging.getLogger(__name__)


class BarcodeState(enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    SEARCHING = "searching"
    PRODUCT_FOUND = "product-found"
    PRODUCT_NOT_FOUND = "product-not-found"
    ASSOCIATING_EXISTING = "associating-existing"
    CREATING_NEW = "creating-new"


class InvalidTransition(Exception):
    def __init__(self, state: BarcodeState, action: str):
        super().__init__(f"Cannot {action} while {state.value}")
        self.state = state
        self.action = action


# action -> states it may be called from
TRANSITIONS = {
    "start_scanning": {BarcodeState.IDLE},
    "barcode_scanned": {BarcodeState.SCANNING},
    "accept_product": {BarcodeState.PRODUCT_FOUND},
    "choose_associate_existing": {BarcodeState.PRODUCT_NOT_FOUND},
    "choose_create_new": {BarcodeState.PRODUCT_NOT_FOUND},
    "complete_association": {BarcodeState.ASSOCIATING_EXISTING},
    "complete_creation": {BarcodeState.CREATING_NEW},
    "cancel": set(BarcodeState) - {BarcodeState.IDLE},
}


class BarcodeBackend(Protocol):
    def lookup(self, barcode: str) -> Optional[Any]: ...

    def associate(self, product_id: int, barcode: str) -> Any: ...

    def create(self, fields: dict, barcode: str) -> Any: ...


class ServiceBarcodeBackend:
    """Adapter from the flow to bodega.services.products_service."""

    def lookup(self, barcode: str):
        from .services import products_service

        try:
            return products_service.find_by_barcode(barcode)
        except NotFoundError:
            return None

    def associate(self, product_id: int, barcode: str):
        from .services import products_service

        return products_service.set_barcode(product_id=product_id, barcode=barcode)

    def create(self, fields: dict, barcode: str):
        from .models import Product
        from .services import products_service

        payload = dict(fields)
        payload["barcode"] = barcode
        patch = validate_payload(
            model=Product,
            payload=payload,
            policy=products_service.PRODUCT_POLICY,
            partial=False,
        )
        enforce_rules_product(patch)
        return products_service.create_product(patch=patch)


class BarcodeFlow:
    def __init__(
        self,
        backend: BarcodeBackend,
        on_product_selected: Callable[[Any], None] | None = None,
    ):
        self.backend = backend
        self.on_product_selected = on_product_selected
        self.state = BarcodeState.IDLE
        self.barcode: str | None = None
        self.product = None
        self.error: str | None = None

    def _require(self, action: str) -> None:
        if self.state not in TRANSITIONS[action]:
            raise InvalidTransition(self.state, action)

    def _clear(self) -> None:
        self.barcode = None
        self.product = None
        self.error = None

    def _finish(self, product) -> None:
        if self.on_product_selected is not None:
            self.on_product_selected(product)
        self.state = BarcodeState.IDLE
        self._clear()

    def start_scanning(self) -> None:
        self._require("start_scanning")
        self._clear()
        self.state = BarcodeState.SCANNING

    def barcode_scanned(self, code: str) -> BarcodeState:
        """Record the code and resolve it; ends in product-found or product-not-found."""
        self._require("barcode_scanned")
        code = (code or "").strip()
        if not code:
            self.error = "Empty barcode"
            return self.state

        self.barcode = code
        self.error = None
        self.state = BarcodeState.SEARCHING

        product = self.backend.lookup(code)
        if product is None:
            self.state = BarcodeState.PRODUCT_NOT_FOUND
        else:
            self.product = product
            self.state = BarcodeState.PRODUCT_FOUND

        logger.debug("Barcode %s resolved to %s", code, self.state.value)
        return self.state

    def accept_product(self):
        self._require("accept_product")
        product = self.product
        self._finish(product)
        return product

    def choose_associate_existing(self) -> None:
        self._require("choose_associate_existing")
        self.state = BarcodeState.ASSOCIATING_EXISTING

    def choose_create_new(self) -> None:
        self._require("choose_create_new")
        self.state = BarcodeState.CREATING_NEW

    def complete_association(self, product_id: int):
        """
        Attach the scanned code to an existing product.

        A rejected write (e.g. the code was taken meanwhile) keeps the flow in
        associating-existing with error set, and returns None.
        """
        self._require("complete_association")
        try:
            product = self.backend.associate(product_id, self.barcode)
        except ValueError as exc:
            self.error = str(exc)
            return None
        self._finish(product)
        return product

    def complete_creation(self, fields: dict):
        """Create a product carrying the scanned code. Errors behave as in complete_association."""
        self._require("complete_creation")
        try:
            product = self.backend.create(fields, self.barcode)
        except ValueError as exc:
            self.error = str(exc)
            return None
        self._finish(product)
        return product

    def cancel(self) -> None:
        self._require("cancel")
        self.state = BarcodeState.IDLE
        self._clear()

    def reset(self) -> None:
        self.state = BarcodeState.IDLE
        self._clear()
