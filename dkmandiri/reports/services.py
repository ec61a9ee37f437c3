"""
Dashboard and analytics aggregations.

Sales and profit only count orders whose payment succeeded and that were not
cancelled. Profit is computed per line from the price and cost snapshots
stored on each order item.
"""
from collections import OrderedDict
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.db.models import Sum, Count
from django.utils import timezone

from dkmandiri.catalog.models import Product
from dkmandiri.core.models import User
from dkmandiri.orders.models import Order, OrderItem, Transaction

TIMEFRAME_DAYS = {
    'week': 7,
    'month': 30,
    '3months': 90,
    '6months': 180,
    'year': 365,
    '2years': 730,
}

TIMEFRAME_BUCKETS = {
    'week': 'day',
    'month': 'day',
    '3months': 'week',
    '6months': 'week',
    'year': 'month',
    '2years': 'month',
}

DASHBOARD_STATUS = {
    Transaction.STATUS_SUCCESS: 'success',
    Transaction.STATUS_PENDING: 'pending',
    Transaction.STATUS_FAILED: 'failed',
    Transaction.STATUS_CANCELLED: 'cancelled',
}


def _round(value, places='0.01'):
    return float(Decimal(value).quantize(Decimal(places), rounding=ROUND_HALF_UP))


def successful_orders(queryset=None):
    queryset = Order.objects.all() if queryset is None else queryset
    return queryset.filter(transaction__status=Transaction.STATUS_SUCCESS).exclude(status=Order.STATUS_CANCELLED)


def order_profit(order):
    return sum((item.profit for item in order.items.all()), Decimal('0.00'))


def percent_trend(current, previous):
    """Month-over-month change. 100% when last month was zero and this month is not."""
    current = Decimal(current or 0)
    previous = Decimal(previous or 0)
    if previous == 0:
        change = Decimal('100') if current > 0 else Decimal('0')
    else:
        change = (current - previous) / previous * 100
    return {'value': abs(_round(change, '0.1')), 'is_positive': current >= previous}


def month_bounds(now=None):
    """Start of this month and start of last month in local time"""
    now = timezone.localtime(now)
    this_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    last_month = (this_month - timedelta(days=1)).replace(day=1)
    return this_month, last_month


def _monthly(queryset, field='created_at', value=None):
    this_month, last_month = month_bounds()
    current = queryset.filter(**{f'{field}__gte': this_month})
    previous = queryset.filter(**{f'{field}__gte': last_month, f'{field}__lt': this_month})
    if value is None:
        return current.count(), previous.count()
    return (current.aggregate(total=Sum(value))['total'] or 0,
            previous.aggregate(total=Sum(value))['total'] or 0)


def dashboard_data():
    products = Product.objects.all()
    orders = Order.objects.exclude(status=Order.STATUS_CANCELLED)
    paid = successful_orders()
    customers = User.objects.filter(role=User.ROLE_USER)

    total_sales = paid.aggregate(total=Sum('total_amount'))['total'] or Decimal('0')

    stats = {
        'products': {'value': products.count(), 'trend': percent_trend(*_monthly(products))},
        'orders': {'value': orders.count(), 'trend': percent_trend(*_monthly(orders))},
        'sales': {'value': float(total_sales), 'trend': percent_trend(*_monthly(paid, value='total_amount'))},
        'users': {'value': customers.count(), 'trend': percent_trend(*_monthly(customers))},
    }

    recent = Transaction.objects.select_related('order').order_by('-transaction_date')[:5]
    recent_transactions = [
        {
            'id': payment.id,
            'order_number': payment.order.order_number,
            'date': timezone.localtime(payment.transaction_date).isoformat(),
            'customer': payment.order.customer_name or '-',
            'amount': float(payment.amount),
            'status': DASHBOARD_STATUS.get(payment.status, payment.status.lower()),
        }
        for payment in recent
    ]
    return {'stats': stats, 'recent_transactions': recent_transactions}


def _bucket_key(moment, bucket):
    day = timezone.localtime(moment).date()
    if bucket == 'day':
        return day.isoformat()
    if bucket == 'week':
        return (day - timedelta(days=day.weekday())).isoformat()
    return day.strftime('%Y-%m')


def _empty_buckets(start, end, bucket):
    buckets = OrderedDict()
    cursor = timezone.localtime(start)
    end = timezone.localtime(end)
    step = timedelta(days=1) if bucket == 'day' else timedelta(days=7) if bucket == 'week' else timedelta(days=28)
    while cursor <= end:
        key = _bucket_key(cursor, bucket)
        buckets.setdefault(key, {'period': key, 'orders': 0, 'sales': Decimal('0'), 'profit': Decimal('0')})
        cursor += step
    key = _bucket_key(end, bucket)
    buckets.setdefault(key, {'period': key, 'orders': 0, 'sales': Decimal('0'), 'profit': Decimal('0')})
    return buckets


def analytics_data(timeframe, top_limit=5, detail_limit=50):
    """
    Sales analytics over the timeframe ending now.

    Raises:
        ValueError: For an unknown timeframe
    """
    if timeframe not in TIMEFRAME_DAYS:
        raise ValueError(f'Unknown timeframe: {timeframe}')

    end = timezone.now()
    start = end - timedelta(days=TIMEFRAME_DAYS[timeframe])
    bucket = TIMEFRAME_BUCKETS[timeframe]

    orders = Order.objects.filter(created_at__gte=start, created_at__lte=end)
    paid = list(successful_orders(orders).prefetch_related('items'))
    total_orders = orders.count()
    cancelled = orders.filter(status=Order.STATUS_CANCELLED).count()

    total_sales = sum((order.total_amount for order in paid), Decimal('0'))
    profits = {order.id: order_profit(order) for order in paid}
    total_profit = sum(profits.values(), Decimal('0'))

    summary = {
        'total_sales': float(total_sales),
        'total_orders': total_orders,
        'total_profit': float(total_profit),
        'average_order_value': _round(total_sales / len(paid)) if paid else 0.0,
        'cancellation_rate': _round(Decimal(cancelled) / total_orders * 100) if total_orders else 0.0,
    }

    top_products = [
        {
            'id': row['product_id'],
            'name': row['product_name'],
            'total_sold': float(row['total_sold'] or 0),
            'revenue': float(row['revenue'] or 0),
        }
        for row in OrderItem.objects.filter(order__in=[order.id for order in paid])
        .values('product_id', 'product_name')
        .annotate(total_sold=Sum('weight'), revenue=Sum('total_price'))
        .order_by('-total_sold')[:top_limit]
    ]

    orders_by_status = [
        {'status': row['status'], 'count': row['count']}
        for row in orders.values('status').annotate(count=Count('id')).order_by('status')
    ]

    buckets = _empty_buckets(start, end, bucket)
    for order in paid:
        key = _bucket_key(order.created_at, bucket)
        entry = buckets.setdefault(key, {'period': key, 'orders': 0, 'sales': Decimal('0'), 'profit': Decimal('0')})
        entry['orders'] += 1
        entry['sales'] += order.total_amount
        entry['profit'] += profits[order.id]
    transactions_by_timeframe = [
        {'period': entry['period'], 'orders': entry['orders'],
         'sales': float(entry['sales']), 'profit': float(entry['profit'])}
        for entry in sorted(buckets.values(), key=lambda e: e['period'])
    ]

    details = orders.select_related('transaction').prefetch_related('items').order_by('-created_at')[:detail_limit]
    transaction_details = []
    for order in details:
        payment = getattr(order, 'transaction', None)
        transaction_details.append({
            'id': order.id,
            'order_number': order.order_number,
            'date': timezone.localtime(order.created_at).isoformat(),
            'customer': order.customer_name or '-',
            'amount': float(order.total_amount),
            'profit': float(order_profit(order)),
            'status': order.status,
            'payment_status': payment.status if payment else None,
        })

    return {
        'timeframe': timeframe,
        'period': {'from': start.isoformat(), 'to': end.isoformat(), 'bucket': bucket},
        'summary': summary,
        'top_products': top_products,
        'orders_by_status': orders_by_status,
        'transactions_by_timeframe': transactions_by_timeframe,
        'transaction_details': transaction_details,
    }
