"""Command-line interface for atelier back-office tasks."""

import argparse
import json
import logging
import os
import sys

from . import __version__
from .errors import AtelierError
from .inventory import restock_suggestions
from .lifecycle import OrderLifecycle
from .models import Actor, Coupon, Order, PaymentMethod, PaymentSettings
from .pricing import apply_coupon, compute_price
from .stores import CatalogStore, CouponStore, OrderStore, SettingsStore

# Everything run from the command line acts as this admin
CLI_ACTOR = Actor.admin(user_id="cli", name="atelier CLI")


def get_lifecycle() -> OrderLifecycle:
    """Wire an OrderLifecycle to the stores under the data directory."""
    return OrderLifecycle(
        orders=OrderStore(),
        catalog=CatalogStore(),
        settings=SettingsStore(),
        coupons=CouponStore(),
    )


def format_order(order: Order, verbose: bool = False) -> str:
    lines = [
        f"  {order.id[:8]}  {order.date}  {order.status.value:<16} "
        f"{order.total:>10.2f}  {order.payment_method.value} ({order.payment_status.value})",
        f"           {order.user_name or order.user_id}, {len(order.items)} item(s)",
    ]
    if order.tracking_number:
        lines.append(f"           Tracking: {order.courier} {order.tracking_number}")
    if verbose:
        for entry in order.timeline:
            note = f" - {entry.note}" if entry.note else ""
            lines.append(f"           {entry.timestamp}  {entry.status.value}{note}")
    return "\n".join(lines)


def _resolve_order_id(orders: OrderStore, prefix: str) -> str:
    """Accept a full order id or a unique prefix of one."""
    matches = [o.id for o in orders.list_all() if o.id.startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    return prefix


def cmd_quote(args: argparse.Namespace) -> int:
    """Price a checkout without placing it."""
    try:
        settings = SettingsStore().get()
        coupon = None
        if args.coupon:
            coupon = apply_coupon(args.coupon, CouponStore().list(), args.subtotal)
        price = compute_price(args.subtotal, PaymentMethod.parse(args.method), settings, coupon)

        if args.json:
            print(json.dumps(price.to_dict(), indent=2))
        else:
            print(f"Subtotal:          {price.subtotal:>10.2f}")
            print(f"Shipping:          {price.shipping_cost:>10.2f}")
            print(f"COD fee:           {price.cod_fee:>10.2f}")
            print(f"Prepaid discount: -{price.prepaid_discount:>10.2f}")
            print(f"Coupon discount:  -{price.coupon_discount:>10.2f}")
            print(f"Total:             {price.total:>10.2f}")
        return 0

    except AtelierError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_list(args: argparse.Namespace) -> int:
    """List orders, newest first."""
    try:
        orders = OrderStore()
        found = orders.list_by_user(args.user) if args.user else orders.list_all()
        if args.status:
            found = [o for o in found if o.status.value == args.status]

        if not found:
            print("No orders found.")
            return 0

        if args.json:
            print(json.dumps([o.to_dict() for o in found], indent=2))
        else:
            print(f"Orders ({len(found)}):")
            print()
            for order in found:
                print(format_order(order))
        return 0

    except AtelierError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_show(args: argparse.Namespace) -> int:
    """Show one order with its timeline."""
    try:
        orders = OrderStore()
        order = orders.get(_resolve_order_id(orders, args.order_id))
        if args.json:
            print(json.dumps(order.to_dict(), indent=2))
        else:
            print(format_order(order, verbose=True))
        return 0

    except AtelierError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_advance(args: argparse.Namespace) -> int:
    """Move an order to a new status."""
    try:
        lifecycle = get_lifecycle()
        order_id = _resolve_order_id(lifecycle.orders, args.order_id)
        order = lifecycle.transition(
            order_id,
            args.status,
            CLI_ACTOR,
            note=args.note,
            reason=args.reason,
            tracking_number=args.tracking,
            courier=args.courier,
        )
        print(f"Order {order.id[:8]}: {order.status.value}")
        return 0

    except AtelierError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_auto_ship(args: argparse.Namespace) -> int:
    """Ship orders that have waited long enough."""
    try:
        days = args.days
        if days is None:
            days = int(os.environ.get("ATELIER_AUTO_SHIP_DAYS", "3"))
        result = get_lifecycle().auto_ship_sweep(days, CLI_ACTOR, courier=args.courier)

        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
            return 0

        print(f"Shipped {len(result.shipped)} order(s) older than {days} day(s)")
        for order_id in result.shipped:
            print(f"  {order_id[:8]}")
        if result.skipped:
            print(f"Skipped {len(result.skipped)}:")
            for order_id, reason in result.skipped.items():
                print(f"  {order_id[:8]}  {reason}")
        return 0

    except AtelierError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_restock(args: argparse.Namespace) -> int:
    """Suggest reorder quantities from recent sales."""
    try:
        suggestions = restock_suggestions(
            OrderStore().list_all(),
            CatalogStore().list(),
            lookback_days=args.lookback,
            lead_time_days=args.lead_time,
        )

        if not suggestions:
            print("Stock covers the lead time for every product.")
            return 0

        if args.json:
            print(json.dumps([s.to_dict() for s in suggestions], indent=2))
        else:
            print(f"Restock suggestions ({len(suggestions)}):")
            print()
            for s in suggestions:
                print(
                    f"  {s.product_name:<30} stock {s.current_stock:>4}  "
                    f"sold {s.units_sold:>4}  reorder {s.suggested_reorder:>4}"
                )
        return 0

    except AtelierError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_settings_show(args: argparse.Namespace) -> int:
    """Show payment settings."""
    try:
        settings = SettingsStore().get()
        print(json.dumps(settings.to_dict(), indent=2))
        return 0

    except AtelierError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_settings_set(args: argparse.Namespace) -> int:
    """Change payment settings; options not given keep their value."""
    try:
        store = SettingsStore()
        current = store.get().to_dict()
        changes = {
            "cod_enabled": args.cod_enabled,
            "cod_fee": args.cod_fee,
            "prepaid_discount": args.prepaid_discount,
            "shipping_charge": args.shipping_charge,
            "free_shipping_threshold": args.free_shipping_threshold,
        }
        current.update({k: v for k, v in changes.items() if v is not None})
        settings = store.set(PaymentSettings.from_dict(current))
        print("Updated payment settings:")
        print(json.dumps(settings.to_dict(), indent=2))
        return 0

    except AtelierError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_coupons_list(args: argparse.Namespace) -> int:
    """List coupons."""
    try:
        coupons = CouponStore().list()

        if not coupons:
            print("No coupons found.")
            return 0

        if args.json:
            print(json.dumps([c.to_dict() for c in coupons], indent=2))
        else:
            print(f"Coupons ({len(coupons)}):")
            print()
            for c in coupons:
                amount = f"{c.value:g}%" if c.discount_type.value == "percentage" else f"{c.value:g} off"
                state = "active" if c.is_active else "inactive"
                extra = ""
                if c.min_purchase:
                    extra += f"  min {c.min_purchase:g}"
                if c.expiry_date:
                    extra += f"  until {c.expiry_date}"
                print(f"  {c.code:<16} {amount:<12} {state}{extra}")
        return 0

    except AtelierError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_coupons_add(args: argparse.Namespace) -> int:
    """Create a coupon."""
    try:
        coupon = Coupon.create(
            code=args.code,
            discount_type=args.type,
            value=args.value,
            min_purchase=args.min,
            expiry_date=args.expiry,
        )
        CouponStore().create(coupon)
        print(f"Added coupon: {coupon.code}")
        return 0

    except AtelierError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        print("Starting atelier API server...")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "atelier.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="atelier",
        description="Orders, pricing and stock tools for the atelier storefront.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Log what the commands do"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # quote
    quote_parser = subparsers.add_parser("quote", help="Price a checkout")
    quote_parser.add_argument("subtotal", type=float, help="Cart subtotal")
    quote_parser.add_argument(
        "--method", "-m", choices=["COD", "PrePaid"], default="PrePaid",
        help="Payment method (default: PrePaid)",
    )
    quote_parser.add_argument("--coupon", "-c", help="Coupon code")
    quote_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # orders
    orders_parser = subparsers.add_parser("orders", help="Inspect and advance orders")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command", help="Order commands")

    orders_list_parser = orders_subparsers.add_parser("list", help="List orders")
    orders_list_parser.add_argument("--user", "-u", help="Only this customer's orders")
    orders_list_parser.add_argument("--status", "-s", help="Only orders in this status")
    orders_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    orders_show_parser = orders_subparsers.add_parser("show", help="Show an order")
    orders_show_parser.add_argument("order_id", help="Order ID (or prefix)")
    orders_show_parser.add_argument("--json", action="store_true", help="Output as JSON")

    orders_advance_parser = orders_subparsers.add_parser(
        "advance", help="Move an order to a new status"
    )
    orders_advance_parser.add_argument("order_id", help="Order ID (or prefix)")
    orders_advance_parser.add_argument("status", help="Target status, e.g. Confirmed")
    orders_advance_parser.add_argument("--tracking", "-t", help="Tracking number (Shipped)")
    orders_advance_parser.add_argument("--courier", help="Courier name (Shipped)")
    orders_advance_parser.add_argument("--note", "-n", help="Timeline note")
    orders_advance_parser.add_argument("--reason", "-r", help="Cancellation or return reason")

    # auto-ship
    auto_ship_parser = subparsers.add_parser(
        "auto-ship", help="Ship orders older than N days"
    )
    auto_ship_parser.add_argument(
        "--days", "-d", type=int, default=None,
        help="Age threshold in days (default: $ATELIER_AUTO_SHIP_DAYS or 3)",
    )
    auto_ship_parser.add_argument(
        "--courier", default="Atelier Express", help="Courier recorded on shipped orders"
    )
    auto_ship_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # restock
    restock_parser = subparsers.add_parser("restock", help="Suggest reorder quantities")
    restock_parser.add_argument(
        "--lookback", type=int, default=30, help="Sales window in days (default: 30)"
    )
    restock_parser.add_argument(
        "--lead-time", type=int, default=30, help="Supplier lead time in days (default: 30)"
    )
    restock_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # settings
    settings_parser = subparsers.add_parser("settings", help="Payment settings")
    settings_subparsers = settings_parser.add_subparsers(
        dest="settings_command", help="Settings commands"
    )
    settings_subparsers.add_parser("show", help="Show payment settings")
    settings_set_parser = settings_subparsers.add_parser("set", help="Change payment settings")
    cod_group = settings_set_parser.add_mutually_exclusive_group()
    cod_group.add_argument(
        "--cod-enabled", dest="cod_enabled", action="store_const", const=True, default=None,
        help="Offer cash on delivery",
    )
    cod_group.add_argument(
        "--cod-disabled", dest="cod_enabled", action="store_const", const=False,
        help="Stop offering cash on delivery",
    )
    settings_set_parser.add_argument("--cod-fee", type=float, help="COD surcharge")
    settings_set_parser.add_argument(
        "--prepaid-discount", type=float, help="Prepaid discount in percent"
    )
    settings_set_parser.add_argument("--shipping-charge", type=float, help="Flat shipping charge")
    settings_set_parser.add_argument(
        "--free-shipping-threshold", type=float, help="Subtotal that ships free"
    )

    # coupons
    coupons_parser = subparsers.add_parser("coupons", help="Manage coupons")
    coupons_subparsers = coupons_parser.add_subparsers(dest="coupons_command", help="Coupon commands")

    coupons_list_parser = coupons_subparsers.add_parser("list", help="List coupons")
    coupons_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    coupons_add_parser = coupons_subparsers.add_parser("add", help="Add a coupon")
    coupons_add_parser.add_argument("code", help="Coupon code (stored upper-case)")
    coupons_add_parser.add_argument(
        "--type", choices=["percentage", "fixed"], default="percentage",
        help="Discount type (default: percentage)",
    )
    coupons_add_parser.add_argument("--value", type=float, required=True, help="Discount value")
    coupons_add_parser.add_argument("--min", type=float, help="Minimum purchase")
    coupons_add_parser.add_argument("--expiry", help="Expiry date, e.g. 2025-12-31")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    return parser


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(
            level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s"
        )

    if not args.command:
        parser.print_help()
        return 0

    # Handle grouped subcommands
    groups = {
        "orders": ("orders_command", {
            "list": cmd_orders_list,
            "show": cmd_orders_show,
            "advance": cmd_orders_advance,
        }),
        "settings": ("settings_command", {
            "show": cmd_settings_show,
            "set": cmd_settings_set,
        }),
        "coupons": ("coupons_command", {
            "list": cmd_coupons_list,
            "add": cmd_coupons_add,
        }),
    }
    if args.command in groups:
        dest, handlers = groups[args.command]
        sub = getattr(args, dest, None)
        if not sub:
            parser.parse_args([args.command, "--help"])
            return 0
        return handlers[sub](args)

    commands = {
        "quote": cmd_quote,
        "auto-ship": cmd_auto_ship,
        "restock": cmd_restock,
        "serve": cmd_serve,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
