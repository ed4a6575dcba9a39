from __future__ import annotations


class DeutschProError(Exception):
	"""Base class for errors raised by the trainer."""


class GenerationError(DeutschProError):
	"""A single call to the generation backend failed."""


class BackendUnavailableError(GenerationError):
	"""Every call in a fulfillment run failed; nothing could be generated."""


class MalformedResponseError(GenerationError):
	"""The backend answered, but not with usable JSON."""


class DuplicateItemError(DeutschProError):
	def __init__(self, word: str, word_type: str) -> None:
		super().__init__(f"This {word_type} is already in your lexicon.")
		self.word = word
		self.word_type = word_type


class SnapshotVersionError(DeutschProError):
	def __init__(self, version: object) -> None:
		super().__init__(f"Unsupported snapshot version: {version!r}")
		self.version = version


class CorruptProgressError(DeutschProError):
	"""The stored progress row exists but cannot be read back."""
