"""RS.ge waybill bridge: SOAP proxy plus inventory and customer-debt bookkeeping."""

__version__ = "1.0.0"
