"""WhatsApp message builders for order receipts and status updates"""
from django.conf import settings
from django.utils import timezone

from dkmandiri.core.formatting import format_idr, format_weight


def _store_name():
    return getattr(settings, 'STORE_NAME', 'DK Mandiri')


def _item_lines(order):
    lines = []
    for item in order.items.all():
        lines.append(
            f"- {item.product_name} {format_weight(item.weight)} x Rp {format_idr(item.price)}/kg"
            f" = Rp {format_idr(item.total_price)}"
        )
    return lines


def build_receipt_message(order):
    """Receipt text with every line item and the totals"""
    transaction = getattr(order, 'transaction', None)
    order_date = timezone.localtime(order.created_at).strftime('%d/%m/%Y %H:%M')
    lines = [
        f"*{_store_name()}*",
        "Struk Pembelian",
        "",
        f"No. Pesanan: {order.order_number}",
        f"Tanggal: {order_date}",
        f"Pelanggan: {order.customer_name or '-'}",
    ]
    if transaction is not None:
        lines.append(f"Pembayaran: {transaction.get_payment_method_display()}")
    lines += ["", *_item_lines(order), ""]
    if order.shipping_cost:
        lines.append(f"Ongkir: Rp {format_idr(order.shipping_cost)}")
    lines.append(f"*Total: Rp {format_idr(order.total_amount)}*")
    lines += ["", "Terima kasih telah berbelanja!"]
    return "\n".join(lines)


def build_payment_verified_message(order):
    return "\n".join([
        f"*{_store_name()}*",
        "",
        f"Halo {order.customer_name or 'Pelanggan'},",
        f"Pembayaran untuk pesanan {order.order_number} sebesar Rp {format_idr(order.total_amount)} telah kami terima.",
        "Pesanan Anda sedang kami proses.",
    ])


def build_order_shipped_message(order, status_log=None):
    lines = [
        f"*{_store_name()}*",
        "",
        f"Halo {order.customer_name or 'Pelanggan'},",
        f"Pesanan {order.order_number} sedang dalam pengiriman.",
    ]
    if status_log is not None and status_log.staff_name:
        lines.append(f"Kurir/Petugas: {status_log.staff_name}")
    if status_log is not None and status_log.notes:
        lines.append(f"Catatan: {status_log.notes}")
    return "\n".join(lines)


def build_order_delivered_message(order, status_log=None):
    lines = [
        f"*{_store_name()}*",
        "",
        f"Halo {order.customer_name or 'Pelanggan'},",
        f"Pesanan {order.order_number} telah diterima.",
    ]
    if status_log is not None and status_log.recipient_name:
        lines.append(f"Diterima oleh: {status_log.recipient_name}")
    lines.append("Terima kasih telah berbelanja!")
    return "\n".join(lines)
