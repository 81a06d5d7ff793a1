"""
HTML шаблоны alert emails

Один layout, разные заголовки/тексты для beforeTP и tpReached,
для step (стратегия) и holding (TP alert) правил.
"""

from html import escape
from typing import Tuple

from config.config import FRONTEND_URL
from src.core.enums import AlertKind, RuleSource


_LAYOUT = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif;
            line-height: 1.6;
            background: #f5f7fa;
            padding: 40px 20px;
        }}
        .email-wrapper {{ max-width: 600px; margin: 0 auto; background: #ffffff; border-radius: 12px; }}
        .header {{ background: #047DD5; color: #ffffff; padding: 32px; text-align: center; border-radius: 12px 12px 0 0; }}
        .content {{ padding: 32px 40px; color: #25292E; }}
        .info-card {{ background: #f8f9fa; border: 1px solid #e9ecef; border-radius: 8px; padding: 20px; margin: 24px 0; }}
        .info-row {{ display: flex; justify-content: space-between; padding: 6px 0; }}
        .info-label {{ color: #666; font-size: 14px; }}
        .info-value {{ font-weight: 600; }}
        .price-highlight {{ text-align: center; font-size: 32px; font-weight: 700; color: #047DD5; }}
        .button {{ display: inline-block; background: #047DD5; color: #ffffff !important; padding: 14px 36px; border-radius: 8px; text-decoration: none; }}
        .footer {{ padding: 24px 40px; color: #999; font-size: 12px; text-align: center; }}
    </style>
</head>
<body>
    <div class="email-wrapper">
        <div class="header"><h1>{title}</h1></div>
        <div class="content">
            <p>Hello {user_name},</p>
            <p>{message}</p>
            <div class="info-card">
                <div class="info-row"><span class="info-label">Token</span><span class="info-value">{symbol}</span></div>
                <div class="info-row"><span class="info-label">Target</span><span class="info-value">TP{order}</span></div>
                <div class="info-row"><span class="info-label">Target Price</span><span class="info-value">${target_price}</span></div>
                <div class="price-highlight">${current_price}</div>
                <div style="text-align: center; color: #666; font-size: 13px;">Current Price</div>
            </div>
            <p>{action}</p>
            <a href="{link}" class="button">{link_label}</a>
        </div>
        <div class="footer">
            This is an automated alert from <strong>exStrat</strong>.<br>
            You can manage your alerts in your <a href="{settings_link}">account settings</a>.
        </div>
    </div>
</body>
</html>
"""


def format_price(price: float) -> str:
    """
    Цена для email: 2 знака для обычных цен, больше для дешёвых токенов

    Examples:
        >>> format_price(67123.456)
        '67,123.46'
        >>> format_price(0.000123456)
        '0.00012346'
    """
    if price >= 1:
        return f"{price:,.2f}"
    return f"{price:.8f}".rstrip("0").rstrip(".") or "0"


def build_subject(kind: AlertKind, source: RuleSource, symbol: str, order: int) -> str:
    """Тема письма"""
    if source == RuleSource.STEP:
        if kind == AlertKind.TP_REACHED:
            return f"Target Price Reached - {symbol} Strategy"
        return f"Target Price Approaching - {symbol} Strategy"

    if kind == AlertKind.TP_REACHED:
        return f"TP{order} Reached - {symbol}"
    return f"TP{order} Approaching - {symbol}"


def render_alert_email(
    kind: AlertKind,
    source: RuleSource,
    user_name: str,
    symbol: str,
    order: int,
    current_price: float,
    target_price: float,
    strategy_name: str = "",
) -> Tuple[str, str]:
    """
    Subject и HTML для alert email

    Returns:
        (subject, html)
    """
    subject = build_subject(kind, source, symbol, order)
    reached = kind == AlertKind.TP_REACHED
    safe_symbol = escape(symbol)

    if source == RuleSource.STEP:
        target_label = f"your strategy <strong>{escape(strategy_name) if strategy_name else safe_symbol}</strong>"
        link, link_label = f"{FRONTEND_URL}/strategies", "View Strategy"
    else:
        target_label = f"<strong>{safe_symbol}</strong>"
        link, link_label = f"{FRONTEND_URL}/prevision", "View Forecast"

    if reached:
        title = f"TP{order} Reached"
        message = f"Great news! Your target price TP{order} has been reached for {target_label}."
        action = "It's time to take action! Consider executing your sell order according to your strategy."
    else:
        title = f"TP{order} Approaching"
        message = f"The price is getting close to TP{order} for {target_label}."
        action = "Get ready to execute your profit-taking plan."

    html = _LAYOUT.format(
        title=title,
        user_name=escape(user_name),
        message=message,
        symbol=safe_symbol,
        order=order,
        target_price=format_price(target_price),
        current_price=format_price(current_price),
        action=action,
        link=link,
        link_label=link_label,
        settings_link=f"{FRONTEND_URL}/configuration",
    )
    return subject, html
