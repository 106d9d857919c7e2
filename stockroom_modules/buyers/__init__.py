from stockroom_modules.buyers.service import BuyersService

__all__ = ["BuyersService"]
