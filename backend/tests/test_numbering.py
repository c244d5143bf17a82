from datetime import date
from freightdesk import get_db
from freightdesk.models.loading_order import LoadingOrder
from freightdesk.utils.numbering import next_number, render_number, split_format, validate_number_format
from tests.test_utils_seed import ensure_user, unique


def test_validate_number_format():
    assert validate_number_format('INV-YYYY-NNNNN') == []
    assert validate_number_format('SRV/YY/MM/NNN') == []
    assert validate_number_format('') == ['Format is required']
    assert validate_number_format('INV-YYYY') == ['Format must contain a number token (NNN, NNNN, or NNNNN)']
    assert validate_number_format('INV-YYY-NNNN') == ['Invalid token YYY. Use YYYY, YY, MM, DD, NNN, NNNN or NNNNN']
    assert validate_number_format('NNN-NNN') == ['Format must contain a single number token']
    assert 'Format must be at most 30 characters' in validate_number_format('X' * 30 + 'NNN')


def test_split_and_render():
    on = date(2025, 3, 7)
    assert split_format('INV-YYYY-NNNNN', on) == ('INV-2025-', '', 5)
    assert split_format('YY.MM.DD-NNN-X', on) == ('25.03.07-', '-X', 3)
    assert render_number('LO-YYYY-NNNNN', 42, on) == 'LO-2025-00042'


def _order(number, user_id):
    session = get_db()
    session.add(LoadingOrder(order_number=number, generated_by=user_id))
    session.commit()


def test_next_number_uses_highest_existing_in_period():
    user = ensure_user(f'{unique("num")}@example.com')
    session = get_db()
    fmt = 'NUMT-YYYY-NNNN'
    assert next_number(session, LoadingOrder.order_number, fmt, date(2030, 1, 1)) == 'NUMT-2030-0001'
    _order('NUMT-2030-0001', user.id)
    _order('NUMT-2030-0007', user.id)
    _order('NUMT-2031-0003', user.id)
    assert next_number(session, LoadingOrder.order_number, fmt, date(2030, 6, 1)) == 'NUMT-2030-0008'
    # a new year restarts the sequence
    assert next_number(session, LoadingOrder.order_number, fmt, date(2032, 1, 1)) == 'NUMT-2032-0001'


def test_counter_wider_than_padding_keeps_growing():
    user = ensure_user(f'{unique("num")}@example.com')
    _order('WIDE-999', user.id)
    assert next_number(get_db(), LoadingOrder.order_number, 'WIDE-NNN') == 'WIDE-1000'


def test_sequence_reset_decides_which_dates_restart_counting():
    user = ensure_user(f'{unique("num")}@example.com')
    session = get_db()
    fmt = 'RST-YYYY-MM-NNN'
    _order('RST-2030-01-004', user.id)
    _order('RST-2030-02-002', user.id)
    _order('RST-2029-12-009', user.id)
    on = date(2030, 3, 15)
    assert next_number(session, LoadingOrder.order_number, fmt, on) == 'RST-2030-03-001'
    assert next_number(session, LoadingOrder.order_number, fmt, on, reset='monthly') == 'RST-2030-03-001'
    assert next_number(session, LoadingOrder.order_number, fmt, on, reset='yearly') == 'RST-2030-03-005'
    assert next_number(session, LoadingOrder.order_number, fmt, on, reset='never') == 'RST-2030-03-010'


def test_reset_needs_matching_date_tokens():
    assert validate_number_format('SRV-NNNNN', 'yearly') == [
        'Format must contain a year token (YYYY or YY) to reset yearly']
    assert validate_number_format('SRV-YY-NNN', 'monthly') == [
        'Format must contain year and month tokens (YYYY or YY, and MM) to reset monthly']
    assert validate_number_format('SRV-YY-MM-NNN', 'monthly') == []
    assert validate_number_format('SRV-NNNNN', 'never') == []
