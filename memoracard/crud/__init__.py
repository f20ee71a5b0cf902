from memoracard.crud.deck import (
    create_deck,
    get_deck,
    find_deck,
    list_decks,
    rename_deck,
    delete_deck,
    touch_deck_last_studied
)
from memoracard.crud.card import (
    add_card,
    get_card,
    get_cards_for_deck,
    update_card_content,
    save_card_schedule,
    delete_card
)
from memoracard.crud.session_snapshot import (
    get_session_snapshot,
    put_session_snapshot,
    clear_session_snapshot
)

__all__ = [
    "create_deck",
    "get_deck",
    "find_deck",
    "list_decks",
    "rename_deck",
    "delete_deck",
    "touch_deck_last_studied",
    "add_card",
    "get_card",
    "get_cards_for_deck",
    "update_card_content",
    "save_card_schedule",
    "delete_card",
    "get_session_snapshot",
    "put_session_snapshot",
    "clear_session_snapshot",
]
