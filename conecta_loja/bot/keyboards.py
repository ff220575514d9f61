from aiogram.types import ReplyKeyboardMarkup, KeyboardButton

def main_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text="/catalog"), KeyboardButton(text="/cart")],
            [KeyboardButton(text="/checkout"), KeyboardButton(text="/clear")],
            [KeyboardButton(text="/help")],
        ],
        resize_keyboard=True,
    )
