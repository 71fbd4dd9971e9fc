"""WhatsApp message templates and phone normalization.

Everything here is pure: no I/O, no database. Callers supply valid user and
subscription data; dates are rendered in the reference clock's timezone.
"""

import re
from datetime import datetime
from decimal import Decimal

from buscador.clock import ReferenceClock

BRAZIL_COUNTRY_CODE = "55"
SYSTEM_NAME = "Sistema de Análise de Produtos"

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: str) -> str:
    """Strip everything but digits and prefix the Brazilian country code.

    >>> normalize_phone("+55 (11) 98765-4321")
    '5511987654321'
    >>> normalize_phone("11987654321")
    '5511987654321'
    """
    cleaned = _NON_DIGITS.sub("", phone)
    if not cleaned.startswith(BRAZIL_COUNTRY_CODE):
        cleaned = BRAZIL_COUNTRY_CODE + cleaned
    return cleaned


def format_currency(value: Decimal | float | int) -> str:
    """``289.9`` -> ``"R$ 289.90"``."""
    return f"R$ {Decimal(str(value)):.2f}"


def format_percent(value: float) -> str:
    """Signed percentage with two decimals, e.g. ``+3.50%``."""
    sign = "+" if value > 0 else ""
    return f"{sign}{value:.2f}%"


def format_date(value: datetime, clock: ReferenceClock) -> str:
    """dd/mm/yyyy in the display timezone."""
    return clock.localize(value).strftime("%d/%m/%Y")


def expiry_time_phrase(days_remaining: int) -> str:
    if days_remaining == 0:
        return "hoje"
    if days_remaining == 1:
        return "amanhã"
    return f"{days_remaining} dias"


def expiry_emoji(days_remaining: int) -> str:
    if days_remaining == 0:
        return "🚨"
    if days_remaining == 1:
        return "⚠️"
    return "⏰"


def _footer(kind: str = "Mensagem automática") -> str:
    return f"_{kind} do {SYSTEM_NAME}_"


def render_expiring_message(
    user_name: str,
    days_remaining: int,
    end_date: datetime,
    amount: Decimal | float,
    clock: ReferenceClock,
) -> str:
    """Reminder sent 5, 3, 2, 1 and 0 days before a subscription ends."""
    return "\n".join(
        [
            f"{expiry_emoji(days_remaining)} *AVISO DE VENCIMENTO*",
            "",
            f"Olá, *{user_name}*!",
            "",
            f"Sua assinatura do {SYSTEM_NAME} vence *{expiry_time_phrase(days_remaining)}*!",
            "",
            f"📅 *Data de Vencimento:* {format_date(end_date, clock)}",
            f"💰 *Valor da Renovação:* {format_currency(amount)}",
            "",
            "Para evitar a interrupção do serviço, renove sua assinatura o quanto antes.",
            "",
            _footer(),
        ]
    )


def render_expired_message(
    user_name: str,
    end_date: datetime,
    amount: Decimal | float,
    clock: ReferenceClock,
) -> str:
    """Notice sent when a days-based subscription has lapsed and access is blocked."""
    return "\n".join(
        [
            "🚫 *ASSINATURA VENCIDA*",
            "",
            f"Olá, *{user_name}*!",
            "",
            f"Sua assinatura do {SYSTEM_NAME} expirou e seu acesso foi bloqueado.",
            "",
            f"📅 *Data de Vencimento:* {format_date(end_date, clock)}",
            f"💰 *Valor da Renovação:* {format_currency(amount)}",
            "",
            "Para renovar sua assinatura e recuperar o acesso, entre em contato conosco.",
            "",
            _footer(),
        ]
    )


def render_tester_expired_message(user_name: str, grace_hours: int = 3) -> str:
    """Notice sent when a freemium trial runs out."""
    return "\n".join(
        [
            "⏰ *PERÍODO DE TESTE ENCERRADO*",
            "",
            f"Olá, *{user_name}*!",
            "",
            f"Seu período de teste de {grace_hours} horas do {SYSTEM_NAME} foi encerrado.",
            "",
            "✨ Gostou da plataforma? Entre em contato conosco para conhecer nossos planos "
            "e continuar utilizando todas as funcionalidades!",
            "",
            "💼 *Planos disponíveis:*",
            "• Mensal",
            "• Quinzenal",
            "• Semanal",
            "",
            "📞 Entre em contato para assinar!",
            "",
            _footer(),
        ]
    )


def render_product_update_message(
    name: str,
    supplier: str,
    new_price: float,
    old_price: float | None = None,
    change: float | None = None,
    link: str | None = None,
) -> str:
    """Price change for a product. The delta block needs both old price and change."""
    lines = [
        "📦 *ATUALIZAÇÃO DE PRODUTO*",
        "",
        f"*Produto:* {name}",
        f"🏪 *Fornecedor:* {supplier}",
        "",
    ]
    if old_price and change:
        change_emoji = "📈" if change > 0 else "📉"
        lines += [
            f"💰 *Preço Anterior:* {format_currency(old_price)}",
            f"💵 *Preço Atual:* {format_currency(new_price)}",
            f"{change_emoji} *Variação:* {format_percent(change)}",
        ]
    else:
        lines.append(f"💵 *Preço:* {format_currency(new_price)}")

    if link:
        lines += ["", f"🔗 *Ver detalhes:* {link}"]

    lines += ["", _footer("Atualização automática")]
    return "\n".join(lines)


def render_price_alert_message(
    name: str,
    supplier: str,
    price: float,
    threshold: float,
    link: str | None = None,
) -> str:
    lines = [
        "🚨 *ALERTA DE PREÇO*",
        "",
        f"📦 *Produto:* {name}",
        f"🏪 *Fornecedor:* {supplier}",
        f"💰 *Preço Atual:* {format_currency(price)}",
        f"⚠️ *Limite Configurado:* {format_currency(threshold)}",
    ]
    if link:
        lines += ["", f"🔗 Ver detalhes: {link}"]
    lines += ["", _footer()]
    return "\n".join(lines)


def render_report_message(
    total_products: int,
    price_changes: int,
    avg_change: float,
    period: str,
    link: str | None = None,
) -> str:
    lines = [
        "📊 *RELATÓRIO DE PRODUTOS*",
        "",
        f"📅 *Período:* {period}",
        f"📦 *Total de Produtos:* {total_products}",
        f"📈 *Alterações de Preço:* {price_changes}",
        f"📊 *Variação Média:* {format_percent(avg_change)}",
    ]
    if link:
        lines += ["", f"🔗 Ver relatório completo: {link}"]
    lines += ["", _footer("Relatório automático")]
    return "\n".join(lines)


def render_connection_test_message() -> str:
    return "\n".join(
        [
            "✅ *TESTE DE CONEXÃO*",
            "",
            f"Olá! Esta é uma mensagem de teste do {SYSTEM_NAME}.",
            "",
            "Se você recebeu esta mensagem, significa que a integração com WhatsApp "
            "está funcionando corretamente! 🎉",
            "",
            "_Mensagem enviada BuscadorPXT_",
        ]
    )
