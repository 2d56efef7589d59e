"""
Betting line normalization for the scoring engine

Turns the textual lines captured at lock time ("KC -3.5", "-3", "47.5")
and the numeric fallback lines stored on game results into one canonical,
favorite-relative form. Both the server recomputation job and the
client-side fallback import these functions, so nothing here may depend on
Flask, the database or the clock.
"""

import re
from collections import namedtuple

HOME = "home"
AWAY = "away"

NOT_AVAILABLE = "N/A"

# "KC -3.5", "NYJ+13.5", "LV 3"
TOKEN_LINE_RE = re.compile(r"^([A-Za-z]{2,4})\s*([-+]?\d+(?:\.\d+)?)")
# "-3.5", "+7"
BARE_LINE_RE = re.compile(r"^([-+]?)(\d+(?:\.\d+)?)")
NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
TOKEN_PREFIX_RE = re.compile(r"^[A-Za-z]{2,4}(?![A-Za-z])")

SpreadLine = namedtuple("SpreadLine", ["line", "favored_side"])


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_blank(text):
    return not text or text.strip().upper() == NOT_AVAILABLE


def normalize_token(value):
    """
    Canonical team token used everywhere a team is compared.

    Picks are sometimes stored with the line attached ("NYJ +13.5"); only the
    leading abbreviation is kept.
    """
    if value is None:
        return None
    text = str(value).strip()
    match = TOKEN_PREFIX_RE.match(text)
    if match:
        text = match.group(0)
    return text.upper()


def normalize_direction(value):
    """Map "O"/"over"/"Over" to "over" and "U"/"under" to "under"."""
    if value is None:
        return None
    text = str(value).strip().lower()
    if text.startswith("o"):
        return "over"
    if text.startswith("u"):
        return "under"
    return text


def spread_from_home_line(home_line):
    """
    Canonical line from a home-perspective signed number.

    Negative means the home team is favored. A zero line has no favorite;
    it is reported as away so the home-signed value stays 0.
    """
    home_line = float(home_line)
    favored_side = HOME if home_line < 0 else AWAY
    return SpreadLine(abs(home_line), favored_side)


def normalize_spread(spread_text, home_token, away_token):
    """
    Parse a locked spread into ``SpreadLine(line, favored_side)``.

    Args:
        spread_text: "<TOKEN> <signed number>", a bare signed number, a raw
            home-perspective number, or empty/"N/A"
        home_token: home team abbreviation from the game result
        away_token: away team abbreviation from the game result

    Returns:
        SpreadLine with a non-negative line, or None when the favored side
        cannot be determined
    """
    if spread_text is None:
        return None
    if _is_number(spread_text):
        return spread_from_home_line(spread_text)
    if not isinstance(spread_text, str):
        raise TypeError(
            f"spread must be a string or number, got {type(spread_text).__name__}"
        )
    if _is_blank(spread_text):
        return None

    text = spread_text.strip()

    match = TOKEN_LINE_RE.match(text)
    if match:
        token = normalize_token(match.group(1))
        signed = match.group(2)
        line = abs(float(signed))

        if token == normalize_token(home_token):
            named_side, other_side = HOME, AWAY
        elif token == normalize_token(away_token):
            named_side, other_side = AWAY, HOME
        else:
            return None

        # Negative: the named team gives points. Otherwise it receives them.
        # Older clients read an unsigned "KC 3" as KC favored; here only an
        # explicit minus makes the named team the favorite.
        if signed.startswith("-"):
            return SpreadLine(line, named_side)
        return SpreadLine(line, other_side)

    match = BARE_LINE_RE.match(text)
    if match:
        sign, number = match.groups()
        # Assumed convention for token-less lines: "-" home, "+" away
        if sign == "-":
            return SpreadLine(abs(float(number)), HOME)
        if sign == "+":
            return SpreadLine(abs(float(number)), AWAY)

    return None


def normalize_total(total_text):
    """Extract the over/under line (first decimal number) or None."""
    if total_text is None:
        return None
    if _is_number(total_text):
        return float(total_text)
    if not isinstance(total_text, str):
        raise TypeError(
            f"total must be a string or number, got {type(total_text).__name__}"
        )
    if _is_blank(total_text):
        return None

    match = NUMBER_RE.search(total_text)
    return float(match.group(0)) if match else None
