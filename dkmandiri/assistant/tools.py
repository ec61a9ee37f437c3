"""
Catalog tools the admin assistant may call.

Product writes go through ProductSerializer so the model is held to the same
validation as the dashboard forms.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from django.db.models import Q

from dkmandiri.catalog.models import Category, Product
from dkmandiri.catalog.serializers import ProductSerializer
from dkmandiri.catalog.views import product_snapshot, log_product_changes
from dkmandiri.core.utils import create_audit_log

logger = logging.getLogger(__name__)

ACTION_CREATE_PRODUCT = 'CREATE_PRODUCT'
ACTION_UPDATE_PRODUCT = 'UPDATE_PRODUCT'

SMART_MODE_CREATE = 'create'
SMART_MODE_EDIT = 'edit'

PRODUCT_FIELDS = {
    "name": {"type": "string", "description": "Product name, e.g. 'Ikan Bandeng Presto'"},
    "description": {"type": "string", "description": "Short product description"},
    "category": {"type": "string", "description": "Category name or slug"},
    "price": {"type": "number", "description": "Selling price per kg in rupiah"},
    "cost_price": {"type": "number", "description": "Purchase cost per kg in rupiah"},
    "weight_in_stock": {"type": "number", "description": "Stock in grams (1 kg = 1000)"},
    "min_order_weight": {"type": "number", "description": "Minimum order weight in grams"},
    "is_available": {"type": "boolean", "description": "Whether the product is sold online"},
}

TOOLS = [
    {
        "name": "list_categories",
        "description": "List every product category with its id, name and slug.",
        "input_schema": {"type": "object", "properties": {}},
    },
    {
        "name": "find_products",
        "description": "Search products by name, description or category. Returns id, price per kg and stock in grams.",
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Words to search for, empty lists the newest products"},
                "limit": {"type": "integer", "description": "Maximum results (default 10)"},
            },
        },
    },
    {
        "name": "create_product",
        "description": "Create a new product. Prices are per kg, weights are in grams.",
        "input_schema": {
            "type": "object",
            "properties": PRODUCT_FIELDS,
            "required": ["name", "price", "cost_price"],
        },
    },
    {
        "name": "update_product",
        "description": "Update an existing product by id. Only the given fields change.",
        "input_schema": {
            "type": "object",
            "properties": dict(
                {"product_id": {"type": "integer", "description": "Id of the product to update"}},
                **PRODUCT_FIELDS
            ),
            "required": ["product_id"],
        },
    },
]

READ_ONLY_TOOLS = ('list_categories', 'find_products')


def tools_for_mode(smart_mode: Optional[str] = None) -> List[Dict[str, Any]]:
    """Tool definitions offered to the model for the given smart mode"""
    if smart_mode == SMART_MODE_CREATE:
        allowed = READ_ONLY_TOOLS + ('create_product',)
    elif smart_mode == SMART_MODE_EDIT:
        allowed = READ_ONLY_TOOLS + ('update_product',)
    else:
        allowed = READ_ONLY_TOOLS
    return [tool for tool in TOOLS if tool['name'] in allowed]


def _resolve_category(value):
    if value in (None, ''):
        return None
    value = str(value).strip()
    if value.isdigit():
        category = Category.objects.filter(pk=int(value)).first()
        if category:
            return category
    return Category.objects.filter(Q(name__iexact=value) | Q(slug__iexact=value)).first()


def _product_payload(tool_input):
    """Map tool input onto ProductSerializer fields"""
    payload = {key: value for key, value in tool_input.items() if key in PRODUCT_FIELDS and key != 'category'}
    if 'category' in tool_input:
        category = _resolve_category(tool_input['category'])
        if category is None:
            return None, {'category': f"Unknown category '{tool_input['category']}'"}
        payload['category_id'] = category.id
    return payload, None


def list_categories(request=None) -> Dict[str, Any]:
    categories = Category.objects.order_by('name')
    return {'categories': [{'id': c.id, 'name': c.name, 'slug': c.slug} for c in categories]}


def find_products(query: str = '', limit: int = 10, request=None) -> Dict[str, Any]:
    products = Product.objects.select_related('category')
    for word in (query or '').split():
        products = products.filter(
            Q(name__icontains=word) | Q(description__icontains=word) | Q(category__name__icontains=word)
        )
    limit = max(1, min(int(limit or 10), 50))
    return {
        'products': [
            {
                'id': p.id,
                'name': p.name,
                'category': p.category.name if p.category else None,
                'price': float(p.price),
                'cost_price': float(p.cost_price),
                'weight_in_stock': float(p.weight_in_stock),
                'min_order_weight': float(p.min_order_weight),
                'is_available': p.is_available,
            }
            for p in products[:limit]
        ]
    }


def create_product(request=None, **tool_input) -> Dict[str, Any]:
    payload, error = _product_payload(tool_input)
    if error:
        return {'action': ACTION_CREATE_PRODUCT, 'success': False, 'errors': error}

    serializer = ProductSerializer(data=payload)
    if not serializer.is_valid():
        return {'action': ACTION_CREATE_PRODUCT, 'success': False, 'errors': serializer.errors}

    product = serializer.save()
    create_audit_log(
        request=request,
        action='create',
        model_name='Product',
        object_id=product.id,
        object_name=product.name,
        object_reference=product.slug,
        changes={'source': 'assistant'}
    )
    logger.info(f"Assistant created product {product.id} ({product.name})")
    return {'action': ACTION_CREATE_PRODUCT, 'success': True, 'product': ProductSerializer(product).data}


def update_product(product_id=None, request=None, **tool_input) -> Dict[str, Any]:
    product = Product.objects.filter(pk=product_id).first() if product_id is not None else None
    if product is None:
        return {'action': ACTION_UPDATE_PRODUCT, 'success': False,
                'errors': {'product_id': f'Product {product_id} not found'}}

    payload, error = _product_payload(tool_input)
    if error:
        return {'action': ACTION_UPDATE_PRODUCT, 'success': False, 'errors': error}

    old_data = product_snapshot(product)
    serializer = ProductSerializer(product, data=payload, partial=True)
    if not serializer.is_valid():
        return {'action': ACTION_UPDATE_PRODUCT, 'success': False, 'errors': serializer.errors}

    product = serializer.save()
    log_product_changes(request, product, old_data)
    logger.info(f"Assistant updated product {product.id} ({product.name})")
    return {'action': ACTION_UPDATE_PRODUCT, 'success': True, 'product': ProductSerializer(product).data}


TOOL_FUNCTIONS = {
    'list_categories': list_categories,
    'find_products': find_products,
    'create_product': create_product,
    'update_product': update_product,
}


def execute_tool(tool_name: str, tool_input: Dict[str, Any], request=None,
                 allowed: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Run a tool by name.

    Errors are returned to the model as data so it can correct its input,
    they are never raised to the caller.
    """
    if tool_name not in TOOL_FUNCTIONS or (allowed is not None and tool_name not in allowed):
        return {'error': f"Tool '{tool_name}' is not available"}
    try:
        return TOOL_FUNCTIONS[tool_name](request=request, **(tool_input or {}))
    except TypeError as e:
        return {'error': f"Invalid parameters for {tool_name}: {e}"}
    except (ValueError, ArithmeticError) as e:
        return {'error': f"Error executing {tool_name}: {e}"}


def dump_result(result: Dict[str, Any]) -> str:
    return json.dumps(result, ensure_ascii=False, default=str)
