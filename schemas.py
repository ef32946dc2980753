"""
Database Schemas for the storefront

Each Pydantic model corresponds to a MongoDB collection (lowercased class name)
or to a request body accepted by the API.
"""
from datetime import datetime
from typing import List, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field, model_validator

Category = Literal["Dresses", "Tops", "Bottoms", "Accessories", "Sets"]
Surface = Literal["desktop", "mobile"]


class ColorVariant(BaseModel):
    name: str = Field(..., description="Color name shown to shoppers")
    value: str = Field(..., description="Display color, e.g. '#000000'")
    image_index: Optional[int] = Field(None, ge=0, description="Index into the product's images")


class Product(BaseModel):
    name: str = Field(..., min_length=1, description="Product name")
    description: Optional[str] = Field(None, description="Long product description")
    product_details: Optional[str] = Field(None, description="Fabric and care details")
    price: float = Field(..., ge=0)
    images: List[str] = Field(default_factory=list, description="Image references, in display order")
    colors: List[ColorVariant] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)
    category: Category = Field(...)
    is_active: bool = Field(True)

    @model_validator(mode="after")
    def check_image_indexes(self):
        for color in self.colors:
            if color.image_index is not None and color.image_index >= len(self.images):
                raise ValueError(
                    f"Color '{color.name}' points at image {color.image_index} "
                    f"but the product has {len(self.images)} images"
                )
        return self


class StoredProduct(Product):
    """A product as read back from the catalog, carrying its id."""
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Address(BaseModel):
    type: Literal["shipping", "billing"] = "shipping"
    first_name: str
    last_name: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str
    phone: Optional[str] = None
    is_default: bool = False


# Checkout form state: any field may be blank, checkout.validate_* reports
# problems per field.
class ShippingInfo(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = "United States"


class PaymentInfo(BaseModel):
    cardholder_name: str = ""
    card_number: str = ""
    expiry_date: str = ""
    cvv: str = ""


class PaymentSummary(BaseModel):
    """What an order keeps of the payment: never the full number or the CVV."""
    cardholder_name: str
    card_last4: str


class OrderItem(BaseModel):
    product_id: str
    name: str
    price: float
    quantity: int = Field(..., ge=1)
    selected_color: str
    selected_size: str
    selected_color_value: str = ""
    line_total: float


class Order(BaseModel):
    order_id: Optional[str] = Field(None, description="Assigned once processing succeeds")
    items: List[OrderItem]
    shipping_info: ShippingInfo
    payment: PaymentSummary
    subtotal: float
    shipping: float
    tax: float
    total: float
    status: Literal["pending", "confirmed", "shipped", "delivered"] = "confirmed"


class InstagramPost(BaseModel):
    id: str
    image: str
    link: str
    position: int = Field(..., ge=0)
    show_on_desktop: bool = False
    desktop_position: Optional[int] = None
    show_on_mobile: bool = False
    mobile_position: Optional[int] = None


# ------------------------- Request bodies -------------------------
class HomeDiscoverUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_ids: List[str] = Field(..., alias="productIds")


class InstagramPostCreate(BaseModel):
    id: Optional[str] = None
    image: Optional[str] = None
    link: Optional[str] = None


class InstagramReorder(BaseModel):
    surface: str
    ids: List[str]


class InstagramPostPatch(BaseModel):
    show_on_desktop: Optional[bool] = None
    desktop_position: Optional[int] = None
    show_on_mobile: Optional[bool] = None
    mobile_position: Optional[int] = None


class CalcItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    color: str
    size: str
    color_value: str = ""


class CalcRequest(BaseModel):
    items: List[CalcItem]


class OrderRequest(BaseModel):
    items: List[CalcItem]
    shipping: ShippingInfo
    payment: PaymentInfo


class FavouriteCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(..., alias="productId")
