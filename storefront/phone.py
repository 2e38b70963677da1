"""Приведение телефона для чека к формату E.164 (+7XXXXXXXXXX)."""
import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat

DEFAULT_REGION = "RU"


def normalize_phone(phone: str, region: str = DEFAULT_REGION) -> str:
    """
    Разбор номера с явным регионом по умолчанию.

    Номер без "+" считается номером региона region: для России ведущая 8
    (национальный префикс) и ведущая 7 (код страны) дают +7.

    Returns:
        Номер в E.164 или пустая строка, если номер не разобран
    """
    raw = phone.strip()
    if not raw:
        return ""
    try:
        parsed = phonenumbers.parse(raw, region)
    except NumberParseException:
        return ""
    if not phonenumbers.is_possible_number(parsed):
        return ""
    return phonenumbers.format_number(parsed, PhoneNumberFormat.E164)
