from billpay.directory.biller_directory import BillerDirectory
from billpay.directory.default_billers import default_billers

__all__ = ["BillerDirectory", "default_billers"]
