"""
Anthropic chat wrapper for the storefront and dashboard assistants.

The storefront assistant answers customer questions about products, ordering
and delivery. The dashboard assistant can additionally read and write the
catalog through the tools in tools.py.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import anthropic
from django.conf import settings
from django.utils import timezone

from dkmandiri.catalog.models import Product
from dkmandiri.core.formatting import format_idr, format_weight
from dkmandiri.orders.shipping import list_shipping_methods
from .tools import tools_for_mode, execute_tool, dump_result

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 5
PROMPT_PRODUCT_LIMIT = 50
FALLBACK_RESPONSE = 'Maaf, saya belum bisa menjawab pertanyaan itu. Silakan coba dengan kalimat lain.'


class AssistantError(Exception):
    """Raised when the assistant cannot produce an answer"""


class AssistantNotConfigured(AssistantError):
    """ANTHROPIC_API_KEY is not set"""


@dataclass
class ChatResult:
    response: str
    tools_used: List[str] = field(default_factory=list)
    action_data: Optional[Dict[str, Any]] = None
    input_tokens: int = 0
    output_tokens: int = 0


def limit_history(history, max_messages=None) -> List[Dict[str, str]]:
    """Keep the last N well-formed messages of a client supplied history"""
    if not history:
        return []
    max_messages = max_messages or settings.ASSISTANT_MAX_HISTORY_MESSAGES

    cleaned = [
        {'role': msg['role'], 'content': str(msg['content'])}
        for msg in history
        if isinstance(msg, dict) and msg.get('role') in ('user', 'assistant') and msg.get('content')
    ]
    limited = cleaned[-max_messages:]
    # The API expects the conversation to open with a user turn
    while limited and limited[0]['role'] != 'user':
        limited.pop(0)

    if len(limited) < len(history):
        logger.info(f"History trimmed: {len(history)} -> {len(limited)} messages")
    return limited


def product_catalog_text(limit=PROMPT_PRODUCT_LIMIT) -> str:
    products = (
        Product.objects.filter(is_available=True, weight_in_stock__gt=0)
        .select_related('category')
        .order_by('name')[:limit]
    )
    lines = [
        f"- {p.name} ({p.category.name if p.category else 'Tanpa kategori'}): "
        f"Rp {format_idr(p.price)}/kg, stok {format_weight(p.weight_in_stock)}, "
        f"minimal pembelian {format_weight(p.min_order_weight)}"
        for p in products
    ]
    return '\n'.join(lines) or '- Belum ada produk yang tersedia.'


def shipping_text() -> str:
    return '\n'.join(
        f"- {method['name']}: Rp {format_idr(method['cost'])}" for method in list_shipping_methods()
    )


def customer_system_prompt(user=None) -> str:
    """Storefront prompt, with the customer's recent orders when a user is given"""
    today = timezone.localdate().strftime('%Y-%m-%d')
    prompt = f"""Kamu adalah asisten toko {settings.STORE_NAME}, toko ikan dan hasil laut di {settings.STORE_ADDRESS}.
Hari ini: {today}

## Produk yang tersedia (harga per kg)
{product_catalog_text()}

## Metode pengiriman
{shipping_text()}

## Pembayaran
- Midtrans (transfer bank, e-wallet, kartu)
- Transfer manual ke rekening {settings.BANK_NAME} a.n. {settings.BANK_ACCOUNT_NAME}, lalu unggah bukti transfer

## Aturan
- Jawab dalam bahasa Indonesia yang ramah dan singkat
- Hanya sebutkan produk dan harga dari daftar di atas, jangan mengarang
- Berat dihitung dalam gram, harga dalam rupiah per kg
- Untuk pertanyaan di luar toko, arahkan kembali ke produk dan layanan toko
"""
    if user is not None:
        prompt += f"\n## Pelanggan\nNama: {user.name or user.username}\n{recent_orders_text(user)}\n"
    return prompt


def recent_orders_text(user, limit=5) -> str:
    orders = user.orders.prefetch_related('items').order_by('-created_at')[:limit]
    if not orders:
        return 'Belum ada pesanan.'
    lines = ['Pesanan terakhir:']
    for order in orders:
        items = ', '.join(f"{item.product_name} {format_weight(item.weight)}" for item in order.items.all())
        lines.append(
            f"- {order.order_number} ({order.created_at:%d-%m-%Y}) status {order.status}, "
            f"total Rp {format_idr(order.total_amount)}: {items}"
        )
    return '\n'.join(lines)


def admin_system_prompt(smart_mode=None) -> str:
    prompt = f"""You are the catalog assistant for the {settings.STORE_NAME} admin dashboard.
You help staff look up, create and edit products.

## Units
- price and cost_price are rupiah per kg
- weight_in_stock and min_order_weight are grams (1 kg = 1000 g, 1 kwintal = 100000 g)
- cost_price may not exceed price

## Rules
- Look products up with find_products before updating them and use the returned id
- Use list_categories to pick an existing category, never invent one
- Only report data returned by the tools
- If required details are missing, ask for them instead of guessing
- Reply in the language the user writes in
"""
    if smart_mode == 'create':
        prompt += '\nThe user is creating a new product. Collect name, price and cost price, then call create_product.\n'
    elif smart_mode == 'edit':
        prompt += '\nThe user is editing an existing product. Find it first, then call update_product.\n'
    else:
        prompt += '\nCatalog changes are switched off. Answer questions only and suggest create or edit mode for changes.\n'
    return prompt


def _text_of(response) -> str:
    for block in response.content:
        if getattr(block, 'type', None) == 'text' and block.text:
            return block.text
    return FALLBACK_RESPONSE


class AssistantService:
    """Chat with Claude, optionally letting it call catalog tools"""

    def __init__(self, api_key=None, model=None, max_tokens=None):
        api_key = api_key or settings.ANTHROPIC_API_KEY
        if not api_key:
            raise AssistantNotConfigured('ANTHROPIC_API_KEY is not set')

        self.client = anthropic.Anthropic(api_key=api_key)
        self.model = model or settings.ASSISTANT_MODEL
        self.max_tokens = max_tokens or settings.ASSISTANT_MAX_TOKENS
        logger.info(f"AssistantService initialized with model: {self.model}")

    def _create(self, system, messages, tools=None):
        kwargs = {
            'model': self.model,
            'max_tokens': self.max_tokens,
            'system': system,
            'messages': messages,
        }
        if tools:
            kwargs['tools'] = tools
        return self.client.messages.create(**kwargs)

    def chat(self, message: str, history=None, user=None) -> ChatResult:
        """Storefront chat without tools"""
        messages = limit_history(history) + [{'role': 'user', 'content': message}]
        logger.info(f"Processing customer query: {message[:100]}")

        response = self._create(customer_system_prompt(user), messages)
        return ChatResult(
            response=_text_of(response),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    def admin_chat(self, message: str, history=None, smart_mode=None, request=None) -> ChatResult:
        """Dashboard chat with the catalog tool loop"""
        tools = tools_for_mode(smart_mode)
        allowed = [tool['name'] for tool in tools]
        system = admin_system_prompt(smart_mode)
        messages = limit_history(history) + [{'role': 'user', 'content': message}]
        result = ChatResult(response='')

        logger.info(f"Processing admin query (mode={smart_mode}): {message[:100]}")
        response = self._create(system, messages, tools)
        result.input_tokens += response.usage.input_tokens
        result.output_tokens += response.usage.output_tokens

        rounds = 0
        while response.stop_reason == 'tool_use' and rounds < MAX_TOOL_ROUNDS:
            rounds += 1
            tool_results = []
            for block in response.content:
                if getattr(block, 'type', None) != 'tool_use':
                    continue

                logger.info(f"Executing tool: {block.name} with input: {block.input}")
                result.tools_used.append(block.name)
                outcome = execute_tool(block.name, block.input, request=request, allowed=allowed)
                if 'action' in outcome:
                    result.action_data = {
                        'action': outcome['action'],
                        'success': outcome['success'],
                        'product': outcome.get('product'),
                    }
                    if not outcome['success']:
                        result.action_data['error'] = outcome.get('errors')
                tool_results.append({
                    'type': 'tool_result',
                    'tool_use_id': block.id,
                    'content': dump_result(outcome),
                })

            messages.append({'role': 'assistant', 'content': response.content})
            messages.append({'role': 'user', 'content': tool_results})

            response = self._create(system, messages, tools)
            result.input_tokens += response.usage.input_tokens
            result.output_tokens += response.usage.output_tokens

        result.response = _text_of(response)
        logger.info(
            f"Admin query completed. Tools used: {result.tools_used}, "
            f"Tokens: {result.input_tokens}/{result.output_tokens}"
        )
        return result


_service_instance: Optional[AssistantService] = None


def get_assistant_service() -> AssistantService:
    """Shared AssistantService instance, created on first use"""
    global _service_instance
    if _service_instance is None:
        _service_instance = AssistantService()
    return _service_instance


def reset_assistant_service():
    global _service_instance
    _service_instance = None
