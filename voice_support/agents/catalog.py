"""Product inquiry agent: single product, search results or popular products."""

from typing import Any, Dict

from voice_support.agents.base import Agent, AgentDescriptor
from voice_support.models.agent_models import ActionStatus

RESULT_LIMIT = 5
SPOKEN_POPULAR_LIMIT = 3
DESCRIPTION_LIMIT = 200


def format_product_details(product: Dict[str, Any]) -> Dict[str, Any]:
    variants = product.get("variants") or []
    first = variants[0] if variants else {}
    return {
        "id": product.get("id"),
        "title": product.get("title"),
        "price": first.get("price") or "N/A",
        "available": (first.get("inventory_quantity") or 0) > 0,
        "description": (product.get("body_html") or "")[:DESCRIPTION_LIMIT],
        "image": (product.get("image") or {}).get("src", ""),
        "variants": len(variants),
        "tags": product.get("tags") or [],
    }


def format_context_update(results: Dict[str, Any]) -> str:
    if results["type"] == "single_product":
        p = results["product"]
        lines = [
            "Product Details:",
            f"- Name: {p['title']}",
            f"- Price: ₹{p['price']}",
            f"- Availability: {'In Stock' if p['available'] else 'Out of Stock'}",
        ]
        if p["variants"] > 1:
            lines.append(f"- Available in {p['variants']} variants (size/color options)")
        if p["description"]:
            lines.append(f"- Description: {p['description']}")
        lines.extend([
            "",
            "Tell customer about this product in natural Hindi. Mention price, availability, "
            "and key features. Ask if they want to order or see more options.",
        ])
        return "\n".join(lines)

    if results["type"] == "search_results":
        lines = [f"Found {results['count']} products:", ""]
        for idx, p in enumerate(results["products"], start=1):
            lines.append(f"{idx}. {p['title']}")
            lines.append(f"   - Price: ₹{p['price']}")
            lines.append(f"   - {'Available' if p['available'] else 'Out of Stock'}")
            lines.append("")
        lines.append(
            "Tell customer about these products in Hindi. Mention top 2-3 options with prices. "
            "Ask which one they're interested in or if they want more details about any "
            "specific product."
        )
        return "\n".join(lines)

    lines = ["Our Popular Products:", ""]
    for idx, p in enumerate(results["products"][:SPOKEN_POPULAR_LIMIT], start=1):
        lines.append(f"{idx}. {p['title']} - ₹{p['price']}")
    lines.extend([
        "",
        "Share these popular items with customer in Hindi. These are best-selling products. "
        "Ask which category they're interested in.",
    ])
    return "\n".join(lines)


async def run_product_inquiry(agent: Agent):
    query = agent.data.get("query")
    product_id = agent.data.get("product_id")
    action = await agent.record_action(
        "product_inquiry",
        {"query": query, "product_id": product_id, "category": agent.data.get("category")},
        confidence=0.85,
    )

    if product_id:
        product = await agent.commerce.get_product(product_id)
        if not product:
            await agent.reject(
                action,
                "Product not found",
                "Product not found. Ask if customer wants to search for something else.",
            )
            return
        results = {"type": "single_product", "product": format_product_details(product)}

    elif query:
        products = await agent.commerce.search_products(query, RESULT_LIMIT)
        if not products:
            await agent.mark_action(action, ActionStatus.SUCCESS, {"found": False})
            agent.complete({
                "success": True,
                "results": [],
                "contextUpdate": (
                    f'No products found for "{query}". Suggest customer to try different '
                    "search terms or ask about popular products. Say in Hindi: "
                    '"Sir, yeh product abhi stock mein nahi hai. Kuch aur dekhna chahenge?"'
                ),
            })
            return
        results = {
            "type": "search_results",
            "products": [format_product_details(p) for p in products],
            "count": len(products),
        }

    else:
        products = await agent.commerce.get_popular_products(RESULT_LIMIT) or []
        results = {
            "type": "popular_products",
            "products": [format_product_details(p) for p in products],
            "count": len(products),
        }

    await agent.mark_action(action, ActionStatus.SUCCESS, {"results": results})
    agent.complete({
        "success": True,
        "results": results,
        "contextUpdate": format_context_update(results),
    })


PRODUCT_INQUIRY = AgentDescriptor(
    name="ProductInquiryAgent",
    required_fields=(),
    run=run_product_inquiry,
    prompts={
        "query": 'Ask user: "Ji sir, aap kaunsa product dekhna chahenge? Kuch specific batayiye"',
    },
)
