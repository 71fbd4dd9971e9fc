"""Tests for message templates and phone normalization."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from buscador.clock import ReferenceClock
from buscador.notifications.formatting import (
    expiry_emoji,
    expiry_time_phrase,
    format_currency,
    format_date,
    format_percent,
    normalize_phone,
    render_connection_test_message,
    render_expired_message,
    render_expiring_message,
    render_product_update_message,
    render_report_message,
    render_tester_expired_message,
)


@pytest.fixture
def sp_clock() -> ReferenceClock:
    return ReferenceClock(
        "America/Sao_Paulo", now_fn=lambda: datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)
    )


class TestNormalizePhone:
    """Tests for normalize_phone."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("+55 (11) 98765-4321", "5511987654321"),
            ("(11) 98765-4321", "5511987654321"),
            ("11987654321", "5511987654321"),
            ("5511987654321", "5511987654321"),
        ],
    )
    def test_examples(self, raw: str, expected: str) -> None:
        assert normalize_phone(raw) == expected

    def test_local_number_starting_with_55_is_not_prefixed(self) -> None:
        """Numbers that already begin with 55 are taken as carrying the country code."""
        assert normalize_phone("55 91234-5678") == "55912345678"

    def test_result_is_digits_only(self) -> None:
        assert normalize_phone("+55 (21) 9.8765-4321 ext").isdigit()


class TestExpiryWording:
    """Tests for the urgency phrase and emoji."""

    @pytest.mark.parametrize(
        ("days", "phrase", "emoji"),
        [(0, "hoje", "🚨"), (1, "amanhã", "⚠️"), (2, "2 dias", "⏰"), (5, "5 dias", "⏰")],
    )
    def test_by_days_remaining(self, days: int, phrase: str, emoji: str) -> None:
        assert expiry_time_phrase(days) == phrase
        assert expiry_emoji(days) == emoji


class TestFormatters:
    """Tests for currency, percent and date formatting."""

    def test_currency_two_decimals(self) -> None:
        assert format_currency(Decimal("289.9")) == "R$ 289.90"
        assert format_currency(10) == "R$ 10.00"

    def test_percent_sign(self) -> None:
        assert format_percent(3.5) == "+3.50%"
        assert format_percent(-2.25) == "-2.25%"
        assert format_percent(0) == "0.00%"

    def test_date_uses_reference_timezone(self, sp_clock: ReferenceClock) -> None:
        # 02:00 UTC is still the previous day in São Paulo
        assert format_date(datetime(2026, 10, 20, 2, 0), sp_clock) == "19/10/2026"
        assert format_date(datetime(2026, 10, 20, 4, 0), sp_clock) == "20/10/2026"


class TestSubscriptionTemplates:
    """Tests for the scheduler's message templates."""

    def test_expiring_today(self, sp_clock: ReferenceClock) -> None:
        message = render_expiring_message(
            "Maria", 0, datetime(2026, 10, 19, 20, 0), Decimal("289.90"), sp_clock
        )
        assert message.startswith("🚨 *AVISO DE VENCIMENTO*")
        assert "Olá, *Maria*!" in message
        assert "vence *hoje*!" in message
        assert "19/10/2026" in message
        assert "R$ 289.90" in message

    def test_expiring_in_three_days(self, sp_clock: ReferenceClock) -> None:
        message = render_expiring_message(
            "João", 3, datetime(2026, 10, 22, 15, 0), Decimal("150"), sp_clock
        )
        assert message.startswith("⏰")
        assert "vence *3 dias*!" in message
        assert "22/10/2026" in message
        assert "R$ 150.00" in message

    def test_expired(self, sp_clock: ReferenceClock) -> None:
        message = render_expired_message(
            "Maria", datetime(2026, 10, 18, 15, 0), Decimal("289.90"), sp_clock
        )
        assert "*ASSINATURA VENCIDA*" in message
        assert "acesso foi bloqueado" in message
        assert "18/10/2026" in message

    def test_tester_expired_mentions_grace_hours(self) -> None:
        message = render_tester_expired_message("Ana", grace_hours=3)
        assert "*PERÍODO DE TESTE ENCERRADO*" in message
        assert "teste de 3 horas" in message
        assert "Olá, *Ana*!" in message


class TestProductTemplates:
    """Tests for product, price alert and report templates."""

    def test_product_update_with_delta(self) -> None:
        message = render_product_update_message(
            "iPhone 15", "Loja A", 4999.0, old_price=5299.0, change=-5.66, link="https://x.test/p/1"
        )
        assert "*Preço Anterior:* R$ 5299.00" in message
        assert "*Preço Atual:* R$ 4999.00" in message
        assert "📉 *Variação:* -5.66%" in message
        assert "https://x.test/p/1" in message

    def test_product_update_without_change_shows_single_price(self) -> None:
        message = render_product_update_message("iPhone 15", "Loja A", 4999.0, old_price=5299.0)
        assert "Preço Anterior" not in message
        assert "*Preço:* R$ 4999.00" in message
        assert "Ver detalhes" not in message

    def test_report(self) -> None:
        message = render_report_message(120, 14, 2.5, "Outubro/2026")
        assert "*Período:* Outubro/2026" in message
        assert "*Total de Produtos:* 120" in message
        assert "+2.50%" in message

    def test_connection_test(self) -> None:
        assert "*TESTE DE CONEXÃO*" in render_connection_test_message()
