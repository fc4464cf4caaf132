"""Static lookup tables shared across the poster pipeline."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class FormatConfig:
    label: str
    aspect_ratio: str
    width: int
    height: int


FORMAT_CONFIGS: Mapping[str, FormatConfig] = MappingProxyType(
    {
        "instagram-square": FormatConfig("Instagram square", "1:1", 1080, 1080),
        "instagram-story": FormatConfig("Instagram story", "9:16", 1080, 1920),
        "facebook-post": FormatConfig("Facebook post", "4:5", 1080, 1350),
        "facebook-cover": FormatConfig("Facebook cover", "16:9", 1640, 924),
        "twitter-post": FormatConfig("Twitter / X post", "16:9", 1200, 675),
        "whatsapp-status": FormatConfig("WhatsApp status", "9:16", 1080, 1920),
    }
)


@dataclass(frozen=True)
class CategoryStyle:
    label: str
    palette: str
    aesthetic: str


CATEGORY_STYLES: Mapping[str, CategoryStyle] = MappingProxyType(
    {
        "restaurant": CategoryStyle(
            label="Restaurant / Cafe",
            palette="warm tones: reds, terracotta, golds, cream",
            aesthetic=(
                "Appetizing, inviting, food-focused. The meal photo is the hero element. "
                "Make the price prominent with a bold but clean badge or pill."
            ),
        ),
        "supermarket": CategoryStyle(
            label="Supermarket",
            palette="fresh and energetic: warm reds, greens, yellows, creams",
            aesthetic=(
                "Clean retail aesthetic with bold price tags. Product photos are clear and "
                "identifiable. The headline is prominent."
            ),
        ),
        "ecommerce": CategoryStyle(
            label="Online Store",
            palette="modern: deep teals, warm neutrals, one bold accent color",
            aesthetic=(
                "Clean e-commerce aesthetic, minimalist but impactful. Product on a clean "
                "background with shipping information visible."
            ),
        ),
        "services": CategoryStyle(
            label="Services",
            palette="trustworthy: deep blues, slate, clean whites, one warm accent",
            aesthetic=(
                "Professional and reliable. Clear service name, structured details and a "
                "confident price presentation."
            ),
        ),
        "fashion": CategoryStyle(
            label="Fashion",
            palette="editorial: blacks, creams, muted pastels or one saturated statement color",
            aesthetic=(
                "Editorial, magazine-like composition. The garment is the hero with generous "
                "negative space and elegant typography."
            ),
        ),
        "beauty": CategoryStyle(
            label="Beauty / Salon",
            palette="soft and luxurious: blush pinks, nudes, champagne gold, ivory",
            aesthetic=(
                "Calm, polished, spa-like. Soft lighting feel, refined typography and a "
                "sense of care and luxury."
            ),
        ),
    }
)

CAMPAIGN_GUIDANCE: Mapping[str, str] = MappingProxyType(
    {
        "ramadan": (
            "Campaign: Ramadan special.\n"
            "Palette: deep indigo/navy, warm gold, emerald accents, soft cream.\n"
            "Motifs: subtle crescent moon, lantern or geometric arabesque pattern at very low opacity.\n"
            "Tone: calm, premium, spiritual yet modern. Avoid clutter and cartoonish icons."
        ),
        "eid": (
            "Campaign: Eid offer.\n"
            "Palette: warm gold, celebratory green, clean neutrals.\n"
            "Motifs: minimal sparkles, starbursts, confetti dots (small and tasteful).\n"
            "Tone: joyful, premium, modern. Keep the layout clean and balanced."
        ),
    }
)

STANDARD_CAMPAIGN_RULES = (
    "This is a STANDARD (non-seasonal) campaign. Do NOT use any religious, seasonal or holiday motifs, "
    "even if the reference images contain them.\n"
    "- No Ramadan elements: no crescents, no lanterns, no Islamic arches.\n"
    "- No Eid elements: no festive confetti, no starbursts.\n"
    "- Keep the design modern, commercial and seasonally neutral."
)

CATEGORY_INSPIRATION_DIRS: Mapping[str, str] = MappingProxyType(
    {
        "restaurant": "food",
        "supermarket": "supermarkets",
        "ecommerce": "products",
        "services": "services",
        "fashion": "fashion",
        "beauty": "beauty",
    }
)

MENU_FORMAT_CONFIG = FormatConfig("A4 menu", "2:3", 1240, 1754)
MENU_FORMAT = "a4-menu"
MENU_MIN_ITEMS = 2
MENU_MAX_ITEMS = 9
MENU_CREDIT_COST = 2
MENU_INSPIRATION_SIZE = (540, 764)

MENU_CATEGORY_STYLES: Mapping[str, CategoryStyle] = MappingProxyType(
    {
        "restaurant": CategoryStyle(
            label="Restaurant / Cafe Menu",
            palette="warm appetizing tones: deep reds, golds, cream, warm browns or dark wood textures",
            aesthetic=(
                "Professional menu layout. Each item gets a dedicated section with its photo "
                "prominently displayed alongside name and price. Think restaurant menu boards, "
                "cafe chalkboards or printed menu cards. Products look appetizing."
            ),
        ),
        "supermarket": CategoryStyle(
            label="Supermarket Product Catalog",
            palette="energetic retail: bright reds, yellows, greens on white or cream",
            aesthetic=(
                "Bold product catalog with prominent price tags and eye-catching borders. "
                "Products are clear and identifiable with prices as the focal point. "
                "No sale, offer or discount elements unless old prices were provided."
            ),
        ),
    }
)

MENU_INSPIRATION_DIRS: Mapping[str, tuple] = MappingProxyType(
    {
        "restaurant": ("restaurants", "cafe"),
        "supermarket": ("supermarket",),
    }
)

# Dropdown display tables: option key -> language code -> display text.
OptionTable = Mapping[str, Mapping[str, str]]

CTA_OPTIONS: Mapping[str, OptionTable] = MappingProxyType(
    {
        "restaurant": {
            "order_now": {
                "en": "Order now and enjoy the offer",
                "ar": "اطلب الآن واستفد من العرض",
                "he": "הזמינו עכשיו ותיהנו מהמבצע",
            },
            "order_before_end": {
                "en": "Order before the offer ends",
                "ar": "اطلب قبل انتهاء العرض",
                "he": "הזמינו לפני סיום המבצע",
            },
            "fast_delivery": {"en": "Fast delivery", "ar": "توصيل سريع", "he": "משלוח מהיר"},
        },
        "supermarket": {
            "order_now": {"en": "Order now", "ar": "اطلب الآن", "he": "הזמינו עכשיו"},
            "add_to_cart_whatsapp": {
                "en": "Add to cart via WhatsApp",
                "ar": "أضف للسلة عبر الواتساب",
                "he": "הוסיפו לסל בוואטסאפ",
            },
            "valid_today": {"en": "Offer valid today", "ar": "العرض ساري اليوم", "he": "המבצע בתוקף היום"},
        },
        "ecommerce": {
            "buy_now": {"en": "Buy now", "ar": "اشترِ الآن", "he": "קנו עכשיו"},
            "shop_now": {"en": "Shop now", "ar": "تسوق الآن", "he": "לחנות עכשיו"},
            "view_details": {"en": "View details", "ar": "شاهد التفاصيل", "he": "לפרטים נוספים"},
        },
        "services": {
            "book_now": {"en": "Book now", "ar": "احجز الآن", "he": "הזמינו עכשיו"},
            "request_visit": {"en": "Request a visit", "ar": "اطلب زيارة", "he": "בקשו ביקור"},
            "whatsapp_consultation": {
                "en": "WhatsApp consultation",
                "ar": "استشارة واتساب",
                "he": "ייעוץ בוואטסאפ",
            },
        },
        "fashion": {
            "order_now": {"en": "Order now", "ar": "اطلب الآن", "he": "הזמינו עכשיו"},
            "shop_now": {"en": "Shop now", "ar": "تسوق الآن", "he": "לחנות עכשיו"},
            "message_for_sizes": {
                "en": "Message us for sizes",
                "ar": "راسلنا للمقاسات",
                "he": "שלחו הודעה לבירור מידות",
            },
        },
        "beauty": {
            "book_now": {"en": "Book now", "ar": "احجزي الآن", "he": "קבעי תור עכשיו"},
            "reserve_spot": {"en": "Reserve your spot", "ar": "احجزي موعدك", "he": "שריינו תור"},
            "order_whatsapp": {"en": "Order via WhatsApp", "ar": "اطلب واتساب", "he": "הזמינו בוואטסאפ"},
        },
    }
)

OFFER_BADGE_OPTIONS: OptionTable = MappingProxyType(
    {
        "discount": {"en": "Special discount", "ar": "خصم خاص", "he": "הנחה מיוחדת"},
        "limited_offer": {"en": "Limited offer", "ar": "عرض محدود", "he": "מבצע מוגבל"},
        "new": {"en": "New", "ar": "جديد", "he": "חדש"},
        "best_seller": {"en": "Best seller", "ar": "الأكثر مبيعاً", "he": "רב מכר"},
        "free_delivery": {"en": "Free delivery", "ar": "توصيل مجاني", "he": "משלוח חינם"},
    }
)

DELIVERY_TYPE_OPTIONS: OptionTable = MappingProxyType(
    {
        "delivery": {"en": "Delivery available", "ar": "توصيل متاح", "he": "יש משלוחים"},
        "pickup": {"en": "Pickup only", "ar": "استلام من المطعم", "he": "איסוף עצמי"},
        "delivery_and_pickup": {"en": "Delivery & pickup", "ar": "توصيل واستلام", "he": "משלוח ואיסוף"},
    }
)

SHIPPING_OPTIONS: OptionTable = MappingProxyType(
    {
        "free": {"en": "Free shipping", "ar": "شحن مجاني", "he": "משלוח חינם"},
        "paid": {"en": "Paid shipping", "ar": "شحن مدفوع", "he": "משלוח בתשלום"},
    }
)

PRICE_TYPE_OPTIONS: OptionTable = MappingProxyType(
    {
        "fixed": {"en": "Fixed price", "ar": "سعر ثابت", "he": "מחיר קבוע"},
        "starting_from": {"en": "Starting from", "ar": "يبدأ من", "he": "החל מ-"},
        "per_hour": {"en": "Per hour", "ar": "للساعة", "he": "לשעה"},
    }
)

AVAILABILITY_OPTIONS: OptionTable = MappingProxyType(
    {
        "in_stock": {"en": "In stock", "ar": "متوفر الآن", "he": "זמין במלאי"},
        "limited_stock": {"en": "Limited stock", "ar": "كمية محدودة", "he": "מלאי מוגבל"},
    }
)

BOOKING_CONDITION_OPTIONS: OptionTable = MappingProxyType(
    {
        "appointment_required": {
            "en": "By appointment only",
            "ar": "بالحجز المسبق فقط",
            "he": "בתיאום מראש בלבד",
        },
        "walk_in": {"en": "Walk-ins welcome", "ar": "بدون حجز مسبق", "he": "ללא צורך בתור"},
    }
)

_FIELD_OPTION_TABLES: Mapping[str, OptionTable] = MappingProxyType(
    {
        "offer_badge": OFFER_BADGE_OPTIONS,
        "delivery_type": DELIVERY_TYPE_OPTIONS,
        "shipping": SHIPPING_OPTIONS,
        "price_type": PRICE_TYPE_OPTIONS,
        "availability": AVAILABILITY_OPTIONS,
        "booking_condition": BOOKING_CONDITION_OPTIONS,
    }
)


# Dropdown fields rendered on the poster, in inventory order.
CATEGORY_OPTION_FIELDS: Mapping[str, tuple] = MappingProxyType(
    {
        "restaurant": ("delivery_type", "offer_badge", "cta"),
        "supermarket": ("offer_badge", "cta"),
        "ecommerce": ("shipping", "offer_badge", "cta"),
        "services": ("price_type", "offer_badge", "cta"),
        "fashion": ("availability", "offer_badge", "cta"),
        "beauty": ("booking_condition", "offer_badge", "cta"),
    }
)


def option_table(category: str, field: str) -> OptionTable:
    """Return the dropdown table backing ``field`` for ``category``."""

    if field == "cta":
        return CTA_OPTIONS[category]
    try:
        return _FIELD_OPTION_TABLES[field]
    except KeyError as exc:
        raise KeyError(f"no option table for field {field!r}") from exc


__all__ = [
    "AVAILABILITY_OPTIONS",
    "BOOKING_CONDITION_OPTIONS",
    "CAMPAIGN_GUIDANCE",
    "CATEGORY_INSPIRATION_DIRS",
    "CATEGORY_OPTION_FIELDS",
    "CATEGORY_STYLES",
    "CTA_OPTIONS",
    "CategoryStyle",
    "DELIVERY_TYPE_OPTIONS",
    "FORMAT_CONFIGS",
    "FormatConfig",
    "MENU_CATEGORY_STYLES",
    "MENU_CREDIT_COST",
    "MENU_FORMAT",
    "MENU_FORMAT_CONFIG",
    "MENU_INSPIRATION_DIRS",
    "MENU_INSPIRATION_SIZE",
    "MENU_MAX_ITEMS",
    "MENU_MIN_ITEMS",
    "OFFER_BADGE_OPTIONS",
    "OptionTable",
    "PRICE_TYPE_OPTIONS",
    "SHIPPING_OPTIONS",
    "STANDARD_CAMPAIGN_RULES",
    "option_table",
]
