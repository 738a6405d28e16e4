from .consent import ConsentRecord

# Define the public API of this module
__all__ = [
    "ConsentRecord",
]
