"""Create CondoChiaro Stripe products and prices in test mode.

Run once inside the backend container:
    python -m app.billing.scripts.create_stripe_products

Amounts come from the configured fee schedule (BASE_FEE, PER_CONDO_FEE,
SUPPLIER_PRO_PRICE). Outputs price IDs to set in .env:
    STRIPE_BASE_PRICE_ID=price_xxx
    STRIPE_CONDOMINIUM_PRICE_ID=price_xxx
    STRIPE_SUPPLIER_PRO_PRICE_ID=price_xxx
"""

import asyncio

from app.billing.exceptions import ConfigurationError
from app.billing.fees import get_fee_schedule, to_cents
from app.billing.stripe_client import get_stripe_client


async def _monthly_price(client, name: str, description: str, amount, currency: str):
    product = await client.v1.products.create_async(
        params={"name": name, "description": description}
    )
    price = await client.v1.prices.create_async(
        params={
            "product": product.id,
            "unit_amount": to_cents(amount),
            "currency": currency,
            "recurring": {"interval": "month"},
        }
    )
    print(f"Created product: {product.name} ({product.id})")
    print(f"  Price: {amount} {currency.upper()}/mo ({price.id})")
    return price


async def main() -> None:
    try:
        client = get_stripe_client()
    except ConfigurationError:
        print("ERROR: STRIPE_SECRET_KEY is not set in .env")
        return

    schedule = get_fee_schedule()

    base_price = await _monthly_price(
        client,
        "CondoChiaro Base",
        "Canone mensile base per l'amministratore",
        schedule.base_fee,
        schedule.currency,
    )
    condo_price = await _monthly_price(
        client,
        "Unità condominiali aggiuntive",
        "Canone mensile per ogni condominio gestito",
        schedule.per_condo_fee,
        schedule.currency,
    )
    supplier_price = await _monthly_price(
        client,
        "CondoChiaro Supplier Pro",
        "Piano Pro per i fornitori",
        schedule.supplier_pro_price,
        schedule.currency,
    )

    print("\n--- Add these to your .env ---")
    print(f"STRIPE_BASE_PRICE_ID={base_price.id}")
    print(f"STRIPE_CONDOMINIUM_PRICE_ID={condo_price.id}")
    print(f"STRIPE_SUPPLIER_PRO_PRICE_ID={supplier_price.id}")


if __name__ == "__main__":
    asyncio.run(main())
