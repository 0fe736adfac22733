# tests/test_numbering.py

from app.billing.numbering import InvoiceNumberGenerator, parse_invoice_number, INVOICE_NUMBER_RE


def test_invoice_number_format():
    # 2025-01-01 00:00:00.123 UTC
    generator = InvoiceNumberGenerator(clock=lambda: 1735689600.123)
    number = generator.next_number()
    assert INVOICE_NUMBER_RE.match(number)
    assert number.startswith('INV-2025-')
    assert parse_invoice_number(number) == (2025, 1735689600123 % 1_000_000)


def test_same_millisecond_gives_distinct_numbers():
    generator = InvoiceNumberGenerator(clock=lambda: 1735689600.0)
    numbers = [generator.next_number() for _ in range(50)]
    assert len(set(numbers)) == 50
    suffixes = [parse_invoice_number(n)[1] for n in numbers]
    assert suffixes == sorted(suffixes)


def test_clock_going_backwards_does_not_repeat():
    ticks = iter([1735689600.500, 1735689600.100])
    generator = InvoiceNumberGenerator(clock=lambda: next(ticks))
    first = generator.next_number()
    second = generator.next_number()
    assert first != second


def test_parse_rejects_other_text():
    assert parse_invoice_number('INV-25-1') is None
    assert parse_invoice_number(None) is None


def test_suffix_wraps_every_million_milliseconds():
    # Numbers 1000 s apart in separate processes share a suffix; only the
    # unique constraint on invoice_number tells them apart
    first = InvoiceNumberGenerator(clock=lambda: 1735689600.0).next_number()
    later = InvoiceNumberGenerator(clock=lambda: 1735690600.0).next_number()
    assert first == later
