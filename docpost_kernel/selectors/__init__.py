"""Read-only query selectors."""

from docpost_kernel.selectors.base import BaseSelector
from docpost_kernel.selectors.inventory_selector import InventorySelector

__all__ = ["BaseSelector", "InventorySelector"]
