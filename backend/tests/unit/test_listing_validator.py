"""
Unit tests for listing validation.

WHAT: Test field rules, error ordering and the built listing
WHY: Only complete listings may be broadcast
HOW: validate() on CollectedSlots built by hand
"""

import pytest
from pydantic import ValidationError

from setu.models.dialogue import CollectedSlots
from setu.services.listing_validator import validate
from setu.utils.exceptions import ListingStatusError


def _slots(**overrides):
    values = dict(commodity="onion", quantity_kg=100, unit="kg", price=40.0)
    values.update(overrides)
    return CollectedSlots(**values)


@pytest.mark.unit
class TestValidListing:
    """Test listings that pass validation."""

    def test_builds_draft_listing(self):
        """Test a complete slot set yields a draft listing with catalog facts."""
        outcome = validate(_slots(grade="A"), session_id="s-1")

        assert outcome.is_valid
        assert outcome.errors == ()
        listing = outcome.listing
        assert listing.session_id == "s-1"
        assert listing.commodity == "onion"
        assert listing.category == "vegetables"
        assert listing.perishability == "medium"
        assert listing.currency == "INR"
        assert listing.status == "draft"
        assert listing.listing_id

    def test_zero_price_allowed(self):
        assert validate(_slots(price=0)).is_valid

    def test_market_quote_needs_no_price(self):
        """Test a market listing is valid without a price."""
        outcome = validate(_slots(price=None, market_quote=True))
        assert outcome.is_valid
        assert outcome.listing.price is None
        assert outcome.listing.market_quote is True

    def test_currency_default_and_normalization(self):
        assert validate(_slots(), default_currency="usd").listing.currency == "USD"
        assert validate(_slots(currency="inr")).listing.currency == "INR"

    def test_unknown_commodity_gets_default_category(self):
        outcome = validate(_slots(commodity="dragon fruit"))
        assert outcome.listing.category == "other"

    def test_listing_id_kept_when_given(self):
        assert validate(_slots(), listing_id="fixed-id").listing.listing_id == "fixed-id"


@pytest.mark.unit
class TestInvalidListing:
    """Test per-field errors."""

    def test_missing_everything_in_field_order(self):
        """Test errors come back ordered commodity, quantity, unit, price."""
        outcome = validate(CollectedSlots())
        assert not outcome.is_valid
        assert outcome.listing is None
        assert outcome.error_fields() == ["commodity", "quantity_kg", "unit", "price"]

    @pytest.mark.parametrize("quantity", [0, -5, float("inf")])
    def test_quantity_must_be_positive(self, quantity):
        outcome = validate(_slots(quantity_kg=quantity))
        assert outcome.error_fields() == ["quantity_kg"]

    def test_negative_price(self):
        outcome = validate(_slots(price=-1))
        assert outcome.error_fields() == ["price"]
        assert "0 or more" in outcome.errors[0].message

    def test_bad_currency(self):
        assert validate(_slots(currency="RUPEE")).error_fields() == ["currency"]

    def test_blank_commodity(self):
        assert validate(_slots(commodity="   ")).error_fields() == ["commodity"]

    def test_error_to_dict(self):
        error = validate(_slots(unit="")).errors[0]
        assert error.to_dict() == {"field": "unit", "message": "unit is required"}


@pytest.mark.unit
class TestListingStatus:
    """Test the listing lifecycle."""

    def test_status_moves_forward(self, listing):
        listing.advance_status("broadcast")
        listing.advance_status("broadcast")
        listing.advance_status("sold")
        assert listing.status == "sold"

    def test_sold_is_final(self, listing):
        listing.advance_status("sold")
        with pytest.raises(ListingStatusError):
            listing.advance_status("sold")

    def test_no_going_back(self, listing):
        listing.advance_status("broadcast")
        with pytest.raises(ListingStatusError):
            listing.advance_status("draft")

    def test_attributes_frozen(self, listing):
        """Test only status may change after validation."""
        with pytest.raises(ValidationError):
            listing.price = 99
