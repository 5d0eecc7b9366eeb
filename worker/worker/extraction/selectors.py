DETAIL_CONTAINERS = [
    ".product-intro",
    ".goods-detail",
    ".item-detail",
    '[data-testid="product-detail"]',
]

LISTING_CONTAINERS = [
    ".product-item",
    ".goods-item",
    ".item-card",
    '[data-testid="product-item"]',
    ".product-card",
    ".goods-card",
]

NAME = [
    "h1",
    "h2",
    "h3",
    ".product-title",
    ".goods-title",
    ".item-title",
    ".product-name",
    ".goods-name",
    ".item-name",
    '[data-testid="product-name"]',
]

PRICE = [
    ".price",
    ".sale-price",
    ".current-price",
    ".goods-price",
    ".item-price",
    ".price-current",
    ".price-now",
    '[data-testid="price"]',
]

IMAGE = [
    'img[src*="goods_img"]',
    'img[src*="product"]',
    ".product-image img",
    ".goods-image img",
    ".item-image img",
    ".crop-image-container img",
]

LINK = [
    'a[href*="/goods/"]',
    'a[href*="/product/"]',
    'a[href*="/item/"]',
]

DESCRIPTION = [
    ".product-intro",
    ".goods-intro",
    ".item-intro",
    ".product-desc",
    ".goods-desc",
    ".item-desc",
    ".description",
    ".summary",
]

CATEGORY = [
    ".breadcrumb a:last-child",
    ".category",
    ".cat-name",
    "[data-category]",
]

RATING = [
    ".rating",
    ".score",
    ".star-rating",
    "[data-rating]",
]
