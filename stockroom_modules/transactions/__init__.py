from stockroom_modules.transactions.service import MovementResult, StockMovementService

__all__ = ["MovementResult", "StockMovementService"]
