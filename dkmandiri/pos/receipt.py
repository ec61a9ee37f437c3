"""Plain-text receipt rendering for POS and storefront orders"""
from django.conf import settings
from django.utils import timezone

from dkmandiri.core.formatting import format_idr, format_weight

RECEIPT_WIDTH = 40


def _row(left, right, width=RECEIPT_WIDTH):
    space = max(width - len(left) - len(right), 1)
    return f"{left}{' ' * space}{right}"


def receipt_lines(order):
    return [
        {
            'name': item.product_name,
            'weight': float(item.weight),
            'weight_display': format_weight(item.weight),
            'price': float(item.price),
            'total': float(item.total_price),
            'total_display': f"Rp {format_idr(item.total_price)}",
        }
        for item in order.items.all()
    ]


def render_receipt(order, cashier=None):
    """Receipt text plus its structured lines"""
    payment = getattr(order, 'transaction', None)
    lines = receipt_lines(order)
    divider = '-' * RECEIPT_WIDTH
    cashier_name = cashier or (order.created_by.username if order.created_by else '-')

    text = [
        settings.STORE_NAME.center(RECEIPT_WIDTH).rstrip(),
    ]
    if settings.STORE_ADDRESS:
        text.append(settings.STORE_ADDRESS.center(RECEIPT_WIDTH).rstrip())
    if settings.STORE_PHONE:
        text.append(f"Telp: {settings.STORE_PHONE}".center(RECEIPT_WIDTH).rstrip())
    text += [
        divider,
        f"No: {order.order_number}",
        f"Tanggal: {timezone.localtime(order.created_at).strftime('%d/%m/%Y %H:%M')}",
        f"Kasir: {cashier_name}",
        f"Pelanggan: {order.customer_name or '-'}",
    ]
    if payment is not None:
        text.append(f"Pembayaran: {payment.get_payment_method_display()}")
    text.append(divider)
    for line in lines:
        text.append(line['name'])
        text.append(_row(f"  {line['weight_display']}", line['total_display']))
    text.append(divider)
    if order.shipping_cost:
        text.append(_row('Ongkir', f"Rp {format_idr(order.shipping_cost)}"))
    text.append(_row('TOTAL', f"Rp {format_idr(order.total_amount)}"))
    text += [divider, 'Terima kasih!'.center(RECEIPT_WIDTH).rstrip()]

    return {
        'order_number': order.order_number,
        'text': '\n'.join(text),
        'lines': lines,
        'total': float(order.total_amount),
        'total_display': f"Rp {format_idr(order.total_amount)}",
    }
