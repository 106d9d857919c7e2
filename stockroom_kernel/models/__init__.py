from stockroom_kernel.models.list_item import ListItemRecord

__all__ = ["ListItemRecord"]
