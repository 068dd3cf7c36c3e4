"""Normalize scraped price strings into a numeric value and currency."""

import logging
import re
import unicodedata
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from catalog_crawler.config import settings
from catalog_crawler.extract.records import PriceEntry

logger = logging.getLogger(__name__)


@dataclass
class NormalizedPrice:
    """Canonical price value."""

    numeric_value: Decimal
    currency: str  # "TRY", "USD", "EUR"
    parse_failed: bool = False
    original_currency: Optional[str] = None  # Set when converted to TRY


class NormalizationError(Exception):
    """Raised when a price string cannot be handled at all."""

    pass


@dataclass(frozen=True)
class PriceShape:
    pattern: re.Pattern
    thousands: Optional[str]
    decimal: Optional[str]


def _shape(pattern: str, thousands: Optional[str], decimal: Optional[str]) -> PriceShape:
    return PriceShape(re.compile(pattern), thousands, decimal)


class PriceNormalizer:
    """Parse Turkish, European and US formatted price strings."""

    # Promotional phrases and labels removed before parsing (case-insensitive)
    NOISE_WORDS = [
        "2 ve üzeri net %50 indirim:",
        "sepette",
        "İndirimli fiyat",
        "Normal fiyat",
        "fırsat",
        "sadece",
        "indirimli",
        "kampanya",
        "alışverişe",
        "başlayan fiyatlarla",
        "başlayan",
        "TL'den",
        "ve üzeri",
        "fiyatı",
        "fiyat",
        "adet",
        "KDV dahil",
        "₺",
        "tl",
        ":",
    ]

    CURRENCY_MARKERS = {
        "USD": ("$", "usd"),
        "EUR": ("€", "eur"),
    }

    # First match decides which separator is the decimal point
    SHAPES = [
        _shape(r"^\d{1,3}(\.\d{3})+,\d{1,2}$", ".", ","),  # 1.449,90
        _shape(r"^\d{1,3}(,\d{3})+\.\d{1,2}$", ",", "."),  # 3,950.00
        _shape(r"^0[,.]\d{1,2}$", None, None),  # 0,99 / 0.99
        _shape(r"^\d+,\d{1,2}$", None, ","),  # 299,99
        _shape(r"^\d+\.\d{1,2}$", None, "."),  # 299.99
        _shape(r"^\d+,\d{3}\.\d{2}$", ",", "."),  # 13950,000.00
        _shape(r"^\d+\.\d{3},\d{2}$", ".", ","),  # 13950.000,00
        _shape(r"^\d{1,3}(\.\d{3})+$", ".", None),  # 1.950
        _shape(r"^\d{1,3}(,\d{3})+$", ",", None),  # 1,950
        _shape(r"^\d+$", None, None),  # 1950
    ]

    def __init__(self, usd_rate: float | None = None, eur_rate: float | None = None):
        self.usd_rate = Decimal(str(usd_rate if usd_rate is not None else settings.usd_rate))
        self.eur_rate = Decimal(str(eur_rate if eur_rate is not None else settings.eur_rate))
        words = sorted(self.NOISE_WORDS, key=len, reverse=True)
        self._noise = re.compile("|".join(re.escape(w) for w in words), re.IGNORECASE)

    def clean(self, raw: str) -> str:
        """Unicode-normalize and strip noise words and whitespace."""
        text = unicodedata.normalize("NFKC", raw).replace("\u00a0", " ")
        text = " ".join(text.split())
        text = self._noise.sub(" ", text)
        return re.sub(r"\s+", "", text)

    def detect_currency(self, text: str) -> tuple[str, str]:
        """Return the currency code and the text with its markers removed."""
        lowered = text.lower()
        for code, markers in self.CURRENCY_MARKERS.items():
            if any(m in lowered for m in markers):
                for marker in markers:
                    text = re.sub(re.escape(marker), "", text, flags=re.IGNORECASE)
                return code, text
        return "TRY", text

    def parse_number(self, text: str) -> Optional[Decimal]:
        """Parse a cleaned numeric string; None when no known shape matches."""
        # Drop stray labels around the number ("Sorunuz", "'den")
        text = re.sub(r"^[^\d]+|[^\d]+$", "", text)
        for shape in self.SHAPES:
            if not shape.pattern.match(text):
                continue
            if shape.thousands:
                text = text.replace(shape.thousands, "")
            if shape.decimal:
                text = text.replace(shape.decimal, ".")
            else:
                text = text.replace(",", ".")
            return Decimal(text)
        return None

    def normalize(self, raw: str, convert: bool = False) -> NormalizedPrice:
        """
        Normalize one price string.

        Args:
            raw: Price text as scraped
            convert: Convert USD/EUR values to TRY with the configured rates

        Returns:
            NormalizedPrice; ``parse_failed`` with value 0 when no shape matched

        Raises:
            NormalizationError: If the input is not a string
        """
        if not isinstance(raw, str):
            raise NormalizationError(f"Price value is not text: {raw!r}")

        currency, text = self.detect_currency(self.clean(raw))
        value = self.parse_number(text)

        if value is None:
            logger.debug(f"Unparsable price text: {raw!r}")
            return NormalizedPrice(numeric_value=Decimal("0"), currency=currency, parse_failed=True)

        if convert and currency != "TRY":
            rate = self.usd_rate if currency == "USD" else self.eur_rate
            return NormalizedPrice(
                numeric_value=(value * rate).quantize(Decimal("0.01")),
                currency="TRY",
                original_currency=currency,
            )

        return NormalizedPrice(numeric_value=value, currency=currency)

    def apply(self, entry: PriceEntry, convert: bool = False) -> PriceEntry:
        """Fill the normalized fields of a price entry; never raises."""
        try:
            result = self.normalize(entry.value, convert=convert)
        except Exception as e:
            logger.warning(f"Price scrape error for {entry.value!r}: {e}")
            return entry.model_copy(
                update={
                    "numeric_value": 0.0,
                    "unset_price": True,
                    "price_scrape_error": True,
                    "error": str(e),
                }
            )

        return entry.model_copy(
            update={
                "numeric_value": float(result.numeric_value),
                "currency": result.currency,
                "unset_price": result.numeric_value == 0,
                "parse_failed": result.parse_failed,
            }
        )


# Global instance
price_normalizer = PriceNormalizer()


def normalize_price(raw: str, convert: bool = False) -> NormalizedPrice:
    return price_normalizer.normalize(raw, convert=convert)


def parse_price_entries(entries: list[PriceEntry], convert: bool = False) -> list[PriceEntry]:
    return [price_normalizer.apply(entry, convert=convert) for entry in entries]
