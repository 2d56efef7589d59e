"""
Tests for betting line normalization.
"""

import pytest

from app.utils.lines import (
    AWAY,
    HOME,
    SpreadLine,
    normalize_direction,
    normalize_spread,
    normalize_token,
    normalize_total,
    spread_from_home_line,
)


class TestNormalizeSpread:
    """Locked spread strings resolve to a favorite-relative line."""

    def test_home_token_negative_is_home_favorite(self):
        assert normalize_spread("KC -3.5", "KC", "LV") == SpreadLine(3.5, HOME)

    def test_away_token_negative_is_away_favorite(self):
        assert normalize_spread("LV -3.5", "KC", "LV") == SpreadLine(3.5, AWAY)

    def test_positive_token_means_other_side_favored(self):
        assert normalize_spread("NYJ +13.5", "BUF", "NYJ") == SpreadLine(13.5, HOME)
        assert normalize_spread("BUF +2", "BUF", "NYJ") == SpreadLine(2.0, AWAY)

    def test_unsigned_number_after_token_is_underdog(self):
        assert normalize_spread("LV 3", "KC", "LV") == SpreadLine(3.0, HOME)

    def test_no_space_between_token_and_number(self):
        assert normalize_spread("KC-7", "KC", "LV") == SpreadLine(7.0, HOME)

    def test_token_matching_is_case_insensitive(self):
        assert normalize_spread("kc -3.5", "KC", "LV") == SpreadLine(3.5, HOME)
        assert normalize_spread("KC -3.5", "kc", "lv") == SpreadLine(3.5, HOME)

    def test_unknown_token_fails(self):
        assert normalize_spread("DAL -3.5", "KC", "LV") is None

    def test_bare_negative_is_home_favorite(self):
        assert normalize_spread("-3.5", "KC", "LV") == SpreadLine(3.5, HOME)

    def test_bare_positive_is_away_favorite(self):
        assert normalize_spread("+7", "KC", "LV") == SpreadLine(7.0, AWAY)

    def test_bare_unsigned_is_indeterminate(self):
        assert normalize_spread("3.5", "KC", "LV") is None

    @pytest.mark.parametrize("text", [None, "", "   ", "N/A", "n/a", "pick em", "EVEN"])
    def test_blank_or_unparseable(self, text):
        assert normalize_spread(text, "KC", "LV") is None

    def test_numeric_input_is_home_perspective(self):
        assert normalize_spread(-3, "KC", "LV") == SpreadLine(3.0, HOME)
        assert normalize_spread(4.5, "KC", "LV") == SpreadLine(4.5, AWAY)

    def test_line_is_never_negative(self):
        for text in ("KC -3.5", "LV +3.5", "-10", "+10"):
            assert normalize_spread(text, "KC", "LV").line >= 0

    def test_uncoercible_type_raises(self):
        with pytest.raises(TypeError):
            normalize_spread(["KC", -3.5], "KC", "LV")
        with pytest.raises(TypeError):
            normalize_spread(True, "KC", "LV")

    def test_deterministic(self):
        assert normalize_spread("KC -3.5", "KC", "LV") == normalize_spread(
            "KC -3.5", "KC", "LV"
        )


class TestSpreadFromHomeLine:
    def test_zero_line_reports_away(self):
        assert spread_from_home_line(0) == SpreadLine(0.0, AWAY)

    def test_negative_is_home(self):
        assert spread_from_home_line(-6.5) == SpreadLine(6.5, HOME)


class TestNormalizeTotal:
    """Over/under strings resolve to the first decimal number."""

    def test_plain_number(self):
        assert normalize_total("47.5") == 47.5

    def test_number_inside_text(self):
        assert normalize_total("O/U 44") == 44.0
        assert normalize_total("Over 51.5 (-110)") == 51.5

    @pytest.mark.parametrize("text", [None, "", "N/A", "no line"])
    def test_missing(self, text):
        assert normalize_total(text) is None

    def test_numeric_passthrough(self):
        assert normalize_total(41) == 41.0

    def test_uncoercible_type_raises(self):
        with pytest.raises(TypeError):
            normalize_total({"line": 47.5})


class TestTokensAndDirections:
    def test_normalize_token_strips_attached_line(self):
        assert normalize_token("NYJ +13.5") == "NYJ"
        assert normalize_token(" kc ") == "KC"

    def test_normalize_token_none(self):
        assert normalize_token(None) is None

    @pytest.mark.parametrize(
        "value,expected",
        [("O", "over"), ("over", "over"), ("Over", "over"), ("U", "under"), ("under", "under")],
    )
    def test_direction_aliases(self, value, expected):
        assert normalize_direction(value) == expected

    def test_unknown_direction_passes_through(self):
        assert normalize_direction("sideways") == "sideways"
