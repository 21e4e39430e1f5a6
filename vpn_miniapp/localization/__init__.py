from .texts import Texts, get_texts

__all__ = ["Texts", "get_texts"]
