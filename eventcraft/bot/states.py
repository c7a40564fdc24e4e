from aiogram.fsm.state import State, StatesGroup


class PriceEdit(StatesGroup):
    item = State()
    price = State()
