"""
Exception types.
"""


class LabelError(Exception):
	pass


class DocumentInvariantError(LabelError, ValueError):
	"""
	A document violates one of its structural invariants.
	"""

	def __init__(self, field: str, message: str) -> None:
		super().__init__(f"{field}: {message}")
		self.field = field
		self.message = message


class ExportBusyError(LabelError):
	"""
	An export is already in flight for this manager.
	"""


class EncoderError(LabelError):
	pass


class AssetError(LabelError):
	pass
