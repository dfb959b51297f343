"""Address domain exceptions."""

from __future__ import annotations

from typing import Any

from modules.core.exceptions import NotFound


class AddressNotFound(NotFound):
    """The address does not exist or belongs to another user."""

    code = "address_not_found"

    def __init__(self, address_id: Any) -> None:
        super().__init__(f"Address {address_id} not found.", address_id=address_id)
