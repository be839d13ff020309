# /shopbot/config/strings.py

# This file contains all user-facing strings, making them easy to manage,
# update, and eventually localize without changing application logic.
# Message keys are the lower-case constant names (WELCOME -> "welcome").
# Placeholders in braces are filled by the flow engine.

# Conversation
WELCOME = "👋 Welcome to the shop assistant!"
INTENT_PROMPT = "What would you like to do?\n\n1️⃣ List products\n2️⃣ Add a new product\n3️⃣ Done"
INVALID_CHOICE = "Sorry, I didn't understand that. Please pick one of the options."
GOODBYE = "👋 All done. Send the trigger code again whenever you need me."

# Listing
LIST_PRODUCTS_HEADER = "📦 *Products ({count}):*"
LIST_PRODUCTS_EMPTY = "No products found in your store."
LIST_PRODUCTS_ERROR = "❌ Could not fetch the product list."
CATALOG_NOT_CONFIGURED = "[WooCommerce not configured]"
PRODUCT_DATA_INCOMPLETE = "[Product data incomplete]"

# Adding a product
ADD_PRODUCT_PROMPT = """
Let's add a new product! 🛍️

Reply with the details, one per line:
Name: Product Name
Price: 29.99
Stock: 10
Description: (optional)

Send *stop* at any time to cancel.
""".strip()
ADD_PRODUCT_CURRENT_VALUES = "Current values:\n{current_values}"
ADD_PRODUCT_MISSING_FIELDS = "Please provide the missing fields:\n\n{missing_fields}"
ADD_PRODUCT_CANCELLED = "Product creation cancelled."
ADD_PRODUCT_IMAGE_PROMPT = "📷 Now send a product image, or send *skip* to continue without one."
ADD_PRODUCT_IMAGE_RECEIVED = "Image received!"
ADD_PRODUCT_IMAGE_SKIPPED = "No image added."
ADD_PRODUCT_IMAGE_INVALID = "Please send an image, or type *skip* to continue without one."
ADD_PRODUCT_RECEIVED = '✅ Product "{name}" added successfully!\n{permalink}'
ADD_PRODUCT_ERROR = "❌ Failed to add the product."

# Field validation
VALIDATION_ERROR_NAME = "Name must not be empty"
VALIDATION_ERROR_PRICE = "Price must be a valid number greater than 0 (e.g., 29.99)"
VALIDATION_ERROR_STOCK = "Stock must be a whole number, 0 or more (e.g., 10)"

# Catalog errors
ERROR_NETWORK = "The store could not be reached. Please try again later."
ERROR_UNAUTHORIZED = "The store rejected our credentials. Please check the API keys."
ERROR_FORBIDDEN = "The store API keys do not have permission for this operation."
ERROR_NOT_FOUND = "The store API endpoint was not found. Please check the store URL."
ERROR_DUPLICATE_SKU = "A product with this SKU already exists."
ERROR_INVALID_DATA = "The store rejected the product data."
ERROR_IMAGE_UPLOAD = "Could not upload the product image. The image URL may be invalid."
ERROR_SERVER = "The store returned a server error. Please try again later."
ERROR_UNKNOWN = "An unexpected error occurred."
