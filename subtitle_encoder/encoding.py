"""Text encoding detection for subtitle files."""

import codecs
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from charset_normalizer import from_bytes

# Byte-order marks, longest first so UTF-32 LE is not mistaken for UTF-16 LE.
_BOMS: Tuple[Tuple[bytes, str], ...] = (
    (codecs.BOM_UTF32_LE, "utf-32-le"),
    (codecs.BOM_UTF32_BE, "utf-32-be"),
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
)

# Language name / ISO 639-2 → ISO 639-1.
LANGUAGE_CODES: Dict[str, str] = {
    "eng": "en", "en": "en", "english": "en",
    "spa": "es", "es": "es", "spanish": "es",
    "fre": "fr", "fra": "fr", "fr": "fr", "french": "fr",
    "ger": "de", "deu": "de", "de": "de", "german": "de",
    "ita": "it", "it": "it", "italian": "it",
    "por": "pt", "pt": "pt", "portuguese": "pt",
    "rus": "ru", "ru": "ru", "russian": "ru",
    "bul": "bg", "bg": "bg", "bulgarian": "bg",
    "srp": "sr", "scc": "sr", "sr": "sr", "serbian": "sr",
    "ukr": "uk", "uk": "uk", "ukrainian": "uk",
    "mac": "mk", "mkd": "mk", "mk": "mk", "macedonian": "mk",
    "jpn": "ja", "ja": "ja", "japanese": "ja",
    "chi": "zh", "zho": "zh", "zh": "zh", "chinese": "zh",
    "kor": "ko", "ko": "ko", "korean": "ko",
    "ara": "ar", "ar": "ar", "arabic": "ar",
    "per": "fa", "fas": "fa", "fa": "fa", "persian": "fa",
    "hin": "hi", "hi": "hi", "hindi": "hi",
    "dut": "nl", "nld": "nl", "nl": "nl", "dutch": "nl",
    "pol": "pl", "pl": "pl", "polish": "pl",
    "swe": "sv", "sv": "sv", "swedish": "sv",
    "nor": "no", "no": "no", "norwegian": "no",
    "dan": "da", "da": "da", "danish": "da",
    "fin": "fi", "fi": "fi", "finnish": "fi",
    "tur": "tr", "tr": "tr", "turkish": "tr",
    "gre": "el", "ell": "el", "el": "el", "greek": "el",
    "heb": "he", "he": "he", "hebrew": "he",
    "cze": "cs", "ces": "cs", "cs": "cs", "czech": "cs",
    "slo": "sk", "slk": "sk", "sk": "sk", "slovak": "sk",
    "slv": "sl", "sl": "sl", "slovenian": "sl",
    "hrv": "hr", "hr": "hr", "croatian": "hr",
    "bos": "bs", "bs": "bs", "bosnian": "bs",
    "hun": "hu", "hu": "hu", "hungarian": "hu",
    "rum": "ro", "ron": "ro", "ro": "ro", "romanian": "ro",
    "alb": "sq", "sqi": "sq", "sq": "sq", "albanian": "sq",
    "tha": "th", "th": "th", "thai": "th",
    "vie": "vi", "vi": "vi", "vietnamese": "vi",
}

# ISO 639-1 → legacy code page most subtitles in that language are written in.
LANGUAGE_CHARSETS: Dict[str, str] = {
    "ar": "windows-1256", "fa": "windows-1256",
    "bg": "windows-1251", "ru": "windows-1251", "sr": "windows-1251",
    "uk": "windows-1251", "mk": "windows-1251",
    "el": "windows-1253",
    "he": "windows-1255",
    "tr": "windows-1254",
    "cs": "windows-1250", "sk": "windows-1250", "sl": "windows-1250",
    "hr": "windows-1250", "bs": "windows-1250", "hu": "windows-1250",
    "pl": "windows-1250", "ro": "windows-1250", "sq": "windows-1250",
    "th": "windows-874",
    "vi": "windows-1258",
    "zh": "gb18030",
    "ja": "shift_jis",
    "ko": "euc-kr",
}


def normalize_language(language: str) -> str:
    """Return the ISO 639-1 code for *language*, or *language* lower-cased."""
    lang_lower = (language or "").strip().lower()
    return LANGUAGE_CODES.get(lang_lower, lang_lower)


def detect_bom(data: bytes) -> Tuple[Optional[str], bytes]:
    """Return ``(encoding, bom)`` for a byte-order mark at the start of *data*."""
    for bom, encoding in _BOMS:
        if data.startswith(bom):
            return encoding, bom
    return None, b""


def guess_encoding(data: bytes) -> Optional[str]:
    """Return charset_normalizer's best guess for *data*, if any."""
    match = from_bytes(data).best()
    return match.encoding if match else None


def detect_encoding(data: bytes) -> Tuple[str, bytes]:
    """Return ``(encoding, bom)`` for subtitle bytes.

    A byte-order mark wins; then strict UTF-8; then charset_normalizer
    heuristics; latin-1 as the last resort since it decodes anything.
    """
    encoding, bom = detect_bom(data)
    if encoding:
        return encoding, bom
    try:
        data.decode("utf-8")
        return "utf-8", b""
    except UnicodeDecodeError:
        pass
    return guess_encoding(data) or "latin-1", b""


def decode_text(data: bytes) -> str:
    """Decode subtitle bytes to text, dropping any byte-order mark."""
    encoding, bom = detect_encoding(data)
    return data[len(bom):].decode(encoding, errors="replace")


class CharsetEncodingDetector:
    """Works out the ``-sub_charenc`` hint for a foreign subtitle file."""

    def get_subtitle_encoding(
        self, path: Union[str, Path], language: Optional[str]
    ) -> Optional[str]:
        """Return the character encoding to pass to the encoder, or None.

        No hint is needed when the file is Unicode (byte-order mark or valid
        UTF-8).  Otherwise the language's legacy code page is used, falling
        back to a content-based guess.
        """
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            logging.warning(f"Could not read {path} for encoding detection: {exc}")
            return None

        encoding, _ = detect_bom(data)
        if encoding:
            return None
        try:
            data.decode("utf-8")
            return None
        except UnicodeDecodeError:
            pass

        charset = LANGUAGE_CHARSETS.get(normalize_language(language or ""))
        if charset:
            return charset

        guess = guess_encoding(data)
        logging.debug(f"Guessed encoding {guess} for {path}")
        return guess
