from aiogram import F
from aiogram.fsm.state import State, StatesGroup

from rentalpro.utils.ui import MENU_BUTTONS

# Form steps take plain text only: commands and menu buttons keep working mid-form
FORM_TEXT = F.text & ~F.text.startswith("/") & ~F.text.in_(MENU_BUTTONS)

class CollectionFormState(StatesGroup):
    waiting_for_electricity = State()
    waiting_for_water = State()
    waiting_for_settings = State()
    waiting_for_fees = State()
    confirm = State()

class AddPropertyState(StatesGroup):
    waiting_for_name = State()
    waiting_for_address = State()
    waiting_for_city = State()
    waiting_for_district = State()

class AddTenantState(StatesGroup):
    waiting_for_name = State()
    waiting_for_phone = State()
    waiting_for_room = State()
