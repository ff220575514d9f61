DISCOUNT_PERCENTAGE = "PERCENTAGE"
DISCOUNT_FIXED_VALUE = "FIXED_VALUE"

# local durable store keys (one store per shopper)
CART_STORAGE_KEY = "conecta-loja-cart"
AUTH_TOKEN_KEY = "authToken"

# error codes returned by the cart API
ERR_UNAUTHORIZED = "UNAUTHORIZED"
ERR_VALIDATION = "VALIDATION_ERROR"
ERR_CART_NOT_FOUND = "CART_NOT_FOUND"
