"""FastAPI REST API for the atelier storefront back-office."""

import os
from typing import Any, Literal, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .advisor import StyleAdvisor
from .bespoke import advance_request, submit_request
from .cart import Cart
from .errors import (
    AtelierError,
    BespokeRequestNotFoundError,
    CouponNotFoundError,
    CouponRejectedError,
    DuplicateCouponError,
    InvalidCartError,
    InvalidCouponError,
    InvalidSchemaVersionError,
    InvalidStatusError,
    InvalidTransitionError,
    MissingShippingInfoError,
    NotCustomizableError,
    OrderNotFoundError,
    OutOfStockError,
    PaymentMethodUnavailableError,
    PermissionDeniedError,
    PersistenceError,
    PricingError,
    ProductNotFoundError,
)
from .inventory import low_stock, restock_suggestions, sales_summary
from .lifecycle import OrderLifecycle
from .models import (
    Actor,
    AuditLog,
    CartItem,
    Coupon,
    Customization,
    Measurements,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentSettings,
    Product,
    Role,
    ShippingAddress,
)
from .pricing import apply_coupon, compute_price
from .stores import BespokeStore, CatalogStore, CouponStore, OrderStore, SettingsStore


# --- Pydantic Schemas ---


class MeasurementsSchema(BaseModel):
    bust: Optional[float] = None
    waist: Optional[float] = None
    hips: Optional[float] = None
    length: Optional[float] = None
    shoulder: Optional[float] = None
    sleeve: Optional[float] = None
    unit: Literal["Inches", "CM"] = "Inches"


class CustomizationSchema(BaseModel):
    measurements: MeasurementsSchema
    notes: str = ""


class ProductSchema(BaseModel):
    id: str
    name: str
    description: str
    price: float
    original_price: float
    category: str
    sub_category: str
    images: list[str]
    sizes: list[str]
    stock: int
    is_offer: bool
    is_customizable: bool
    created_at: str


class ProductCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    category: Literal["Women", "Girls", "Children"] = "Women"
    description: str = ""
    original_price: Optional[float] = Field(default=None, ge=0)
    sub_category: str = ""
    images: list[str] = []
    sizes: list[str] = []
    stock: int = Field(default=0, ge=0)
    is_offer: bool = False
    is_customizable: bool = False


class ProductUpdateRequest(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    category: Optional[Literal["Women", "Girls", "Children"]] = None
    description: Optional[str] = None
    original_price: Optional[float] = Field(default=None, ge=0)
    sub_category: Optional[str] = None
    images: Optional[list[str]] = None
    sizes: Optional[list[str]] = None
    stock: Optional[int] = Field(default=None, ge=0)
    is_offer: Optional[bool] = None
    is_customizable: Optional[bool] = None


class ProductListResponse(BaseModel):
    products: list[ProductSchema]
    count: int


class PaymentSettingsSchema(BaseModel):
    cod_enabled: bool = True
    cod_fee: float = Field(default=50, ge=0)
    prepaid_discount: float = Field(default=5, ge=0, le=100)
    shipping_charge: float = Field(default=99, ge=0)
    free_shipping_threshold: float = Field(default=5000, ge=0)


class CouponSchema(BaseModel):
    id: str
    code: str
    discount_type: Literal["percentage", "fixed"]
    value: float
    min_purchase: Optional[float] = None
    expiry_date: Optional[str] = None
    is_active: bool


class CouponCreateRequest(BaseModel):
    code: str = Field(..., min_length=1)
    discount_type: Literal["percentage", "fixed"] = "percentage"
    value: float = Field(..., ge=0)
    min_purchase: Optional[float] = Field(default=None, ge=0)
    expiry_date: Optional[str] = Field(default=None, description="ISO date, e.g. 2025-12-31")


class CouponListResponse(BaseModel):
    coupons: list[CouponSchema]
    count: int


class CouponApplyRequest(BaseModel):
    code: str
    subtotal: float = Field(..., ge=0)


class QuoteRequest(BaseModel):
    subtotal: float = Field(..., ge=0)
    payment_method: Literal["COD", "PrePaid"]
    coupon_code: Optional[str] = None


class PriceBreakdownSchema(BaseModel):
    subtotal: float
    shipping_cost: float
    cod_fee: float
    prepaid_discount: float
    coupon_discount: float
    discount: float
    total: float


class CartLineRequest(BaseModel):
    product_id: str
    selected_size: str
    quantity: int = Field(default=1, ge=1)
    customization: Optional[CustomizationSchema] = None


class ShippingAddressSchema(BaseModel):
    street: str
    city: str
    state: str
    zip: str
    country: str = "India"


class CheckoutRequest(BaseModel):
    items: list[CartLineRequest] = Field(..., min_length=1)
    shipping_address: ShippingAddressSchema
    payment_method: Literal["COD", "PrePaid"]
    coupon_code: Optional[str] = None


class OrderItemSchema(BaseModel):
    product_id: str
    name: str
    images: list[str]
    price: float
    selected_size: str
    quantity: int
    customization: Optional[CustomizationSchema] = None


class TimelineEntrySchema(BaseModel):
    status: str
    timestamp: str
    note: Optional[str] = None


class OrderSchema(BaseModel):
    id: str
    user_id: str
    user_name: str
    items: list[OrderItemSchema]
    subtotal: float
    shipping_cost: float
    cod_fee: float
    discount: float
    total: float
    status: str
    date: str
    timeline: list[TimelineEntrySchema]
    shipping_address: ShippingAddressSchema
    payment_method: str
    payment_status: str
    tracking_number: Optional[str] = None
    courier: Optional[str] = None
    return_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    coupon_code: Optional[str] = None
    refund_due: bool = False
    restocked: bool = False
    created_at: str
    updated_at: str


class OrderListResponse(BaseModel):
    orders: list[OrderSchema]
    count: int


class TransitionRequest(BaseModel):
    status: str = Field(..., description="Target status, e.g. 'Confirmed' or 'Return Requested'")
    note: Optional[str] = None
    reason: Optional[str] = None
    tracking_number: Optional[str] = None
    courier: Optional[str] = None


class PaymentUpdateRequest(BaseModel):
    status: Literal["Pending", "Paid", "Failed"]


class AutoShipRequest(BaseModel):
    after_days: Optional[int] = Field(default=None, ge=0)
    courier: str = "Atelier Express"


class SweepResultSchema(BaseModel):
    shipped: list[str]
    skipped: dict[str, str]


class BespokeCreateRequest(BaseModel):
    product_id: str
    measurements: MeasurementsSchema
    notes: str = ""
    email: str = ""


class BespokeSchema(BaseModel):
    id: str
    user_id: str
    user_name: str
    user_email: str
    product_id: str
    product_name: str
    measurements: MeasurementsSchema
    notes: str
    status: str
    created_at: str
    updated_at: str


class BespokeListResponse(BaseModel):
    requests: list[BespokeSchema]
    count: int


class BespokeAdvanceRequest(BaseModel):
    status: Literal["Pending", "Consulted", "Fulfilled"]


class AuditLogSchema(BaseModel):
    id: str
    event: str
    user: str
    user_id: str
    timestamp: str
    metadata: Optional[dict[str, Any]] = None


class AuditLogListResponse(BaseModel):
    logs: list[AuditLogSchema]
    count: int


class RestockSuggestionSchema(BaseModel):
    product_id: str
    product_name: str
    current_stock: int
    units_sold: int
    avg_daily_sales: float
    suggested_reorder: int


class SalesSummarySchema(BaseModel):
    days: int
    order_count: int
    revenue: float
    units: int
    by_status: dict[str, int]


class StylingAdviceRequest(BaseModel):
    product_name: str
    description: str = ""


class DescriptionRequest(BaseModel):
    name: str
    category: str


class AdviceResponse(BaseModel):
    text: str


class ErrorResponse(BaseModel):
    detail: str
    error_type: str


# --- Helper Functions ---


def get_catalog_store() -> CatalogStore:
    return CatalogStore()


def get_order_store() -> OrderStore:
    return OrderStore()


def get_coupon_store() -> CouponStore:
    return CouponStore()


def get_settings_store() -> SettingsStore:
    return SettingsStore()


def get_bespoke_store() -> BespokeStore:
    return BespokeStore()


def get_lifecycle() -> OrderLifecycle:
    """Wire an OrderLifecycle to the default stores."""
    return OrderLifecycle(
        orders=get_order_store(),
        catalog=get_catalog_store(),
        settings=get_settings_store(),
        coupons=get_coupon_store(),
    )


def get_advisor() -> StyleAdvisor:
    return StyleAdvisor()


def auto_ship_days() -> int:
    return int(os.environ.get("ATELIER_AUTO_SHIP_DAYS", "3"))


def get_actor(
    x_user_id: str = Header(default=""),
    x_user_name: str = Header(default=""),
    x_user_role: Literal["customer", "admin"] = Header(default="customer"),
) -> Actor:
    """Identify the caller. Sign-in happens upstream; it forwards these headers."""
    return Actor(user_id=x_user_id, name=x_user_name, role=Role.parse(x_user_role))


def require_admin(actor: Actor, action: str) -> None:
    if not actor.is_admin:
        raise PermissionDeniedError(actor.user_id, action)


def order_to_schema(order: Order) -> OrderSchema:
    return OrderSchema(**order.to_dict())


def audit(actor: Actor, event: str, metadata: dict[str, Any] | None = None) -> None:
    get_order_store().append_audit_log(AuditLog.record(event, actor, metadata))


# --- FastAPI App ---


app = FastAPI(
    title="atelier API",
    description="Orders, pricing and back-office operations for the storefront",
    version=__version__,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handler ---


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    InvalidTransitionError: 409,
    MissingShippingInfoError: 400,
    CouponRejectedError: 422,
    PersistenceError: 503,
    PermissionDeniedError: 403,
    OrderNotFoundError: 404,
    ProductNotFoundError: 404,
    CouponNotFoundError: 404,
    BespokeRequestNotFoundError: 404,
    DuplicateCouponError: 409,
    InvalidCartError: 400,
    InvalidCouponError: 400,
    InvalidStatusError: 400,
    PricingError: 400,
    PaymentMethodUnavailableError: 400,
    NotCustomizableError: 400,
    OutOfStockError: 409,
    InvalidSchemaVersionError: 500,
}


@app.exception_handler(AtelierError)
async def atelier_error_handler(request: Request, exc: AtelierError) -> JSONResponse:
    """Map AtelierError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    content = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, CouponRejectedError):
        content["reason"] = exc.reason.value
    return JSONResponse(status_code=status_code, content=content)


# --- Endpoints ---


@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    try:
        settings = get_settings_store().get()
        return {"status": "ok", "version": __version__, "cod_enabled": settings.cod_enabled}
    except AtelierError as e:
        return {"status": "error", "detail": str(e)}


# --- Catalog Endpoints ---


@app.get("/api/products", response_model=ProductListResponse)
def list_products(
    category: Optional[str] = Query(default=None),
    q: Optional[str] = Query(default=None, description="Search name and sub-category"),
):
    products = get_catalog_store().list(category=category, query=q)
    return ProductListResponse(
        products=[ProductSchema(**p.to_dict()) for p in products],
        count=len(products),
    )


@app.post("/api/products", response_model=ProductSchema, status_code=201)
def create_product(request: ProductCreateRequest, actor: Actor = Depends(get_actor)):
    require_admin(actor, "create products")
    fields = request.model_dump()
    product = Product.create(name=fields.pop("name"), price=fields.pop("price"), **fields)
    get_catalog_store().create(product)
    audit(actor, "product_created", {"product_id": product.id, "name": product.name})
    return ProductSchema(**product.to_dict())


@app.get("/api/products/{product_id}", response_model=ProductSchema)
def get_product(product_id: str):
    return ProductSchema(**get_catalog_store().get(product_id).to_dict())


@app.patch("/api/products/{product_id}", response_model=ProductSchema)
def update_product(
    product_id: str, request: ProductUpdateRequest, actor: Actor = Depends(get_actor)
):
    require_admin(actor, "update products")
    partial = request.model_dump(exclude_unset=True)
    product = get_catalog_store().update(product_id, partial)
    audit(actor, "product_updated", {"product_id": product_id, "fields": sorted(partial)})
    return ProductSchema(**product.to_dict())


@app.delete("/api/products/{product_id}", response_model=ProductSchema)
def delete_product(product_id: str, actor: Actor = Depends(get_actor)):
    require_admin(actor, "delete products")
    product = get_catalog_store().delete(product_id)
    audit(actor, "product_deleted", {"product_id": product_id})
    return ProductSchema(**product.to_dict())


# --- Settings Endpoints ---


@app.get("/api/settings", response_model=PaymentSettingsSchema)
def get_payment_settings():
    return PaymentSettingsSchema(**get_settings_store().get().to_dict())


@app.put("/api/settings", response_model=PaymentSettingsSchema)
def put_payment_settings(request: PaymentSettingsSchema, actor: Actor = Depends(get_actor)):
    require_admin(actor, "change payment settings")
    settings = get_settings_store().set(PaymentSettings(**request.model_dump()))
    audit(actor, "payment_settings_updated", settings.to_dict())
    return PaymentSettingsSchema(**settings.to_dict())


# --- Coupon Endpoints ---


@app.get("/api/coupons", response_model=CouponListResponse)
def list_coupons(actor: Actor = Depends(get_actor)):
    require_admin(actor, "list coupons")
    coupons = get_coupon_store().list()
    return CouponListResponse(
        coupons=[CouponSchema(**c.to_dict()) for c in coupons],
        count=len(coupons),
    )


@app.post("/api/coupons", response_model=CouponSchema, status_code=201)
def create_coupon(request: CouponCreateRequest, actor: Actor = Depends(get_actor)):
    require_admin(actor, "create coupons")
    coupon = Coupon.create(
        code=request.code,
        discount_type=request.discount_type,
        value=request.value,
        min_purchase=request.min_purchase,
        expiry_date=request.expiry_date,
    )
    get_coupon_store().create(coupon)
    audit(actor, "coupon_created", {"coupon_id": coupon.id, "code": coupon.code})
    return CouponSchema(**coupon.to_dict())


@app.delete("/api/coupons/{coupon_id}", response_model=CouponSchema)
def delete_coupon(coupon_id: str, actor: Actor = Depends(get_actor)):
    require_admin(actor, "delete coupons")
    coupon = get_coupon_store().delete(coupon_id)
    audit(actor, "coupon_deleted", {"coupon_id": coupon_id, "code": coupon.code})
    return CouponSchema(**coupon.to_dict())


@app.post("/api/coupons/apply", response_model=CouponSchema)
def apply_coupon_code(request: CouponApplyRequest):
    """Validate a coupon against a cart subtotal. Nothing is reserved."""
    coupon = apply_coupon(request.code, get_coupon_store().list(), request.subtotal)
    return CouponSchema(**coupon.to_dict())


# --- Pricing Endpoints ---


@app.post("/api/quote", response_model=PriceBreakdownSchema)
def quote(request: QuoteRequest):
    settings = get_settings_store().get()
    coupon = None
    if request.coupon_code:
        coupon = apply_coupon(request.coupon_code, get_coupon_store().list(), request.subtotal)
    price = compute_price(
        request.subtotal, PaymentMethod.parse(request.payment_method), settings, coupon
    )
    return PriceBreakdownSchema(**price.to_dict())


# --- Order Endpoints ---


def _cart_items_from_request(lines: list[CartLineRequest]) -> list[CartItem]:
    """Rebuild the cart from current catalog data; client prices are never trusted."""
    catalog = get_catalog_store()
    cart = Cart()
    for line in lines:
        customization = None
        if line.customization is not None:
            customization = Customization(
                measurements=Measurements.from_dict(line.customization.measurements.model_dump()),
                notes=line.customization.notes,
            )
        cart.add(catalog.get(line.product_id), line.selected_size, line.quantity, customization)
    return cart.snapshot()


@app.post("/api/orders", response_model=OrderSchema, status_code=201)
def place_order(request: CheckoutRequest, actor: Actor = Depends(get_actor)):
    """Check out: snapshot the cart lines, price them and create a Pending order."""
    if not actor.user_id:
        raise PermissionDeniedError(actor.user_id, "place orders without signing in")
    order = get_lifecycle().place_order(
        actor,
        _cart_items_from_request(request.items),
        ShippingAddress(**request.shipping_address.model_dump()),
        PaymentMethod.parse(request.payment_method),
        coupon_code=request.coupon_code,
    )
    return order_to_schema(order)


@app.get("/api/orders", response_model=OrderListResponse)
def list_orders(
    all_orders: bool = Query(default=False, alias="all"),
    actor: Actor = Depends(get_actor),
):
    """The caller's own orders, or every order for an admin passing all=true."""
    lifecycle = get_lifecycle()
    orders = lifecycle.list_all(actor) if all_orders else lifecycle.list_for_user(actor)
    return OrderListResponse(orders=[order_to_schema(o) for o in orders], count=len(orders))


@app.post("/api/orders/auto-ship", response_model=SweepResultSchema)
def run_auto_ship(request: AutoShipRequest, actor: Actor = Depends(get_actor)):
    days = request.after_days if request.after_days is not None else auto_ship_days()
    result = get_lifecycle().auto_ship_sweep(days, actor, courier=request.courier)
    return SweepResultSchema(**result.to_dict())


@app.get("/api/orders/{order_id}", response_model=OrderSchema)
def get_order(order_id: str, actor: Actor = Depends(get_actor)):
    return order_to_schema(get_lifecycle().get(order_id, actor))


@app.post("/api/orders/{order_id}/transition", response_model=OrderSchema)
def transition_order(
    order_id: str, request: TransitionRequest, actor: Actor = Depends(get_actor)
):
    order = get_lifecycle().transition(
        order_id,
        OrderStatus.parse(request.status),
        actor,
        note=request.note,
        reason=request.reason,
        tracking_number=request.tracking_number,
        courier=request.courier,
    )
    return order_to_schema(order)


@app.post("/api/orders/{order_id}/payment", response_model=OrderSchema)
def update_payment(
    order_id: str, request: PaymentUpdateRequest, actor: Actor = Depends(get_actor)
):
    return order_to_schema(get_lifecycle().mark_payment(order_id, actor, request.status))


# --- Bespoke Endpoints ---


@app.post("/api/bespoke", response_model=BespokeSchema, status_code=201)
def create_bespoke_request(request: BespokeCreateRequest, actor: Actor = Depends(get_actor)):
    product = get_catalog_store().get(request.product_id)
    created = submit_request(
        get_bespoke_store(),
        actor,
        product,
        Measurements.from_dict(request.measurements.model_dump()),
        notes=request.notes,
        email=request.email,
    )
    return BespokeSchema(**created.to_dict())


@app.get("/api/bespoke", response_model=BespokeListResponse)
def list_bespoke_requests(actor: Actor = Depends(get_actor)):
    store = get_bespoke_store()
    requests = store.list() if actor.is_admin else store.list_by_user(actor.user_id)
    return BespokeListResponse(
        requests=[BespokeSchema(**r.to_dict()) for r in requests],
        count=len(requests),
    )


@app.post("/api/bespoke/{request_id}/advance", response_model=BespokeSchema)
def advance_bespoke_request(
    request_id: str, request: BespokeAdvanceRequest, actor: Actor = Depends(get_actor)
):
    updated = advance_request(
        get_bespoke_store(), request_id, request.status, actor, audit=get_order_store()
    )
    return BespokeSchema(**updated.to_dict())


# --- Back-office Reports ---


@app.get("/api/audit-logs", response_model=AuditLogListResponse)
def list_audit_logs(
    limit: Optional[int] = Query(default=None, ge=1),
    actor: Actor = Depends(get_actor),
):
    require_admin(actor, "read audit logs")
    logs = get_order_store().list_audit_logs(limit=limit)
    return AuditLogListResponse(
        logs=[AuditLogSchema(**entry.to_dict()) for entry in logs],
        count=len(logs),
    )


@app.get("/api/inventory/restock", response_model=list[RestockSuggestionSchema])
def get_restock_suggestions(
    lookback_days: int = Query(default=30, ge=1),
    lead_time_days: int = Query(default=30, ge=0),
    actor: Actor = Depends(get_actor),
):
    require_admin(actor, "view restock suggestions")
    suggestions = restock_suggestions(
        get_order_store().list_all(),
        get_catalog_store().list(),
        lookback_days=lookback_days,
        lead_time_days=lead_time_days,
    )
    return [RestockSuggestionSchema(**s.to_dict()) for s in suggestions]


@app.get("/api/inventory/low-stock", response_model=ProductListResponse)
def get_low_stock(
    threshold: int = Query(default=5, ge=0),
    actor: Actor = Depends(get_actor),
):
    require_admin(actor, "view stock levels")
    products = low_stock(get_catalog_store().list(), threshold=threshold)
    return ProductListResponse(
        products=[ProductSchema(**p.to_dict()) for p in products],
        count=len(products),
    )


@app.get("/api/reports/sales", response_model=SalesSummarySchema)
def get_sales_report(
    days: int = Query(default=7, ge=1),
    actor: Actor = Depends(get_actor),
):
    require_admin(actor, "view sales reports")
    summary = sales_summary(get_order_store().list_all(), days=days)
    return SalesSummarySchema(**summary.to_dict())


# --- Advisory Endpoints ---


@app.post("/api/advice/styling", response_model=AdviceResponse)
def styling_advice(request: StylingAdviceRequest):
    return AdviceResponse(text=get_advisor().styling_tips(request.product_name, request.description))


@app.post("/api/advice/description", response_model=AdviceResponse)
def description_advice(request: DescriptionRequest, actor: Actor = Depends(get_actor)):
    require_admin(actor, "generate product copy")
    return AdviceResponse(text=get_advisor().product_description(request.name, request.category))
