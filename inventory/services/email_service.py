"""
Email service for stock alerts and purchase order notices.
Uses Flask-Mail for SMTP; sending is skipped (and reported as success)
when mail is not configured, so alerts never break a stock movement.
"""
import logging
from typing import List, Optional

from flask import current_app
from flask_mail import Mail, Message

logger = logging.getLogger(__name__)

mail = Mail()

STATUS_LABELS = {
    'low': 'Low stock',
    'critical': 'Critical stock',
    'out_of_stock': 'Out of stock',
}


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """
    Check if mail is properly configured and enabled.
    Prevents errors in dev or misconfigured environments.
    """
    cfg = current_app.config
    return bool(
        not cfg.get("MAIL_SUPPRESS_SEND", False)
        and cfg.get("MAIL_SERVER")
        and cfg.get("MAIL_USERNAME")
    )


def send_alert_email(to_email: str, subject: str, message: str, html: Optional[str] = None) -> bool:
    try:
        if not _mail_enabled():
            logger.info(f"[MAIL DISABLED] Alert email skipped for {to_email}")
            return True

        msg = Message(subject=subject, recipients=[to_email], body=message, html=html)
        mail.send(msg)
        logger.info(f"[EMAIL] Alert sent to {to_email}: {subject}")
        return True

    except Exception:
        logger.exception(f"[EMAIL] Error sending alert email to {to_email}")
        return False


def send_low_stock_alert(to_email: str, product_name: str, current_stock: int,
                         min_stock: int, status: str) -> bool:
    """Single-product stock alert."""
    label = STATUS_LABELS.get(status, status)
    subject = f"{label}: {product_name}"

    text_body = (
        f"{label} for {product_name}.\n\n"
        f"Current stock: {current_stock}\n"
        f"Minimum stock: {min_stock}\n"
    )
    html_body = f"""
    <h2>{label}: {product_name}</h2>
    <table border="1" cellpadding="8" cellspacing="0">
        <tr><th>Current stock</th><th>Minimum stock</th></tr>
        <tr><td align="center">{current_stock}</td><td align="center">{min_stock}</td></tr>
    </table>
    """
    return send_alert_email(to_email, subject, text_body, html=html_body)


def send_purchase_order_email(to_email: str, order_number: str, supplier_name: str,
                              items: List[dict], total_amount, expected_delivery_date) -> bool:
    """Send a purchase order to the supplier."""
    rows = "".join(
        f"""
        <tr>
            <td>{item['product_name']}</td>
            <td align="center">{item['quantity']}</td>
            <td align="right">{item['unit_price']}</td>
        </tr>
        """
        for item in items
    )
    html_body = f"""
    <h2>Purchase order {order_number}</h2>
    <p>Dear {supplier_name}, please find our order below.</p>
    <table border="1" cellpadding="8" cellspacing="0" width="100%">
        <tr><th>Product</th><th>Quantity</th><th>Unit price</th></tr>
        {rows}
    </table>
    <p>Total: {total_amount}</p>
    <p>Expected delivery: {expected_delivery_date}</p>
    """
    text_lines = [f"Purchase order {order_number}", ""]
    text_lines += [f"- {item['product_name']}: {item['quantity']} x {item['unit_price']}" for item in items]
    text_lines += ["", f"Total: {total_amount}", f"Expected delivery: {expected_delivery_date}"]

    return send_alert_email(to_email, f"Purchase order {order_number}", "\n".join(text_lines), html=html_body)
