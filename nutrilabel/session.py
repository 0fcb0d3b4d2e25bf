"""
Editing session: single owner of the document, with scheduled auto-save
and debounced validation.
"""

# Standard Library
import dataclasses
import logging
import time

# local repo modules
import nutrilabel.config
import nutrilabel.document
import nutrilabel.nutrition
import nutrilabel.templates
import nutrilabel.validation


logger = logging.getLogger(__name__)

config = nutrilabel.config
LabelDocument = nutrilabel.document.LabelDocument

AUTOSAVE_DELAY = config.AUTOSAVE_DELAY
VALIDATION_DELAY = config.VALIDATION_DELAY
AUTOSAVE_TASK = "autosave"
VALIDATION_TASK = "validate"


@dataclasses.dataclass
class ScheduledTask:
	name: str
	due: float
	callback: object


class TaskScheduler:
	"""
	Named, cancellable tasks driven by an explicit clock.

	Scheduling a name that is already pending replaces it, which gives
	debounce semantics. Nothing runs until run_due is called.
	"""

	def __init__(self, clock=time.monotonic) -> None:
		self.clock = clock
		self._tasks: dict[str, ScheduledTask] = {}

	def schedule(self, name: str, delay: float, callback) -> ScheduledTask:
		task = ScheduledTask(name=name, due=self.clock() + delay, callback=callback)
		self._tasks[name] = task
		return task

	def cancel(self, name: str) -> bool:
		return self._tasks.pop(name, None) is not None

	def is_pending(self, name: str) -> bool:
		return name in self._tasks

	def pending(self) -> list[str]:
		return sorted(self._tasks, key=lambda name: self._tasks[name].due)

	def next_due(self) -> float | None:
		if not self._tasks:
			return None
		return min(task.due for task in self._tasks.values())

	def run_due(self, now: float | None = None) -> list[str]:
		"""
		Run every task whose due time has passed, earliest first.

		Args:
			now: Clock value; defaults to the scheduler clock.

		Returns:
			Names of the tasks that ran.
		"""
		if now is None:
			now = self.clock()
		due = [task for task in self._tasks.values() if task.due <= now]
		due.sort(key=lambda task: task.due)
		ran: list[str] = []
		for task in due:
			# a callback may have replaced or cancelled this task
			if self._tasks.get(task.name) is not task:
				continue
			del self._tasks[task.name]
			task.callback()
			ran.append(task.name)
		return ran

	def run_all(self) -> list[str]:
		"""
		Run every pending task immediately.
		"""
		ran: list[str] = []
		for name in self.pending():
			task = self._tasks.pop(name, None)
			if task is None:
				continue
			task.callback()
			ran.append(name)
		return ran


class EditingSession:
	"""
	Applies edits to the document and keeps preview, validation and
	persistence in step.

	Args:
		document: Starting document.
		persist: Callable receiving the document dict on auto-save.
		controller: Optional PreviewController to refresh on every edit.
		scheduler: TaskScheduler for auto-save and validation.
		registry: Validation rule registry.
	"""

	def __init__(
		self,
		document: LabelDocument,
		persist=None,
		controller=None,
		scheduler: TaskScheduler | None = None,
		registry: nutrilabel.validation.RuleRegistry | None = None,
		autosave_delay: float = AUTOSAVE_DELAY,
		validation_delay: float = VALIDATION_DELAY,
	) -> None:
		self.document = document
		self.persist = persist
		self.controller = controller
		self.scheduler = scheduler or TaskScheduler()
		self.registry = registry
		self.autosave_delay = autosave_delay
		self.validation_delay = validation_delay
		self.validation = nutrilabel.validation.validate(document, registry)
		self.dirty = False
		self.save_count = 0

	#============================================
	def update(self, changes: dict) -> LabelDocument:
		"""
		Apply a nested partial update.

		Args:
			changes: Changes in document_to_dict shape.

		Returns:
			The new document. The current document is kept when the
			update breaks an invariant.
		"""
		document = nutrilabel.document.merge_update(self.document, changes)
		self._commit(document)
		return document

	def apply_template(self, template_id: str) -> LabelDocument:
		changes = nutrilabel.templates.template_changes(template_id)
		template = nutrilabel.templates.get_template(template_id)
		if template.regulatory in config.REGULATORY_STANDARDS:
			changes["regulatory_standard"] = template.regulatory
		return self.update(changes)

	def set_logo_position(self, preset: str) -> LabelDocument:
		logo = self.document.branding.logo
		if logo is None:
			raise ValueError("Document has no logo")
		position = nutrilabel.templates.preset_position(
			preset, self.document.layout.dimensions, logo.dimensions, logo.position,
		)
		return self.update({"branding": {"logo": {"position": dataclasses.asdict(position)}}})

	def set_qr_position(self, preset: str) -> LabelDocument:
		qr = self.document.qr
		if qr is None:
			raise ValueError("Document has no QR code")
		size = nutrilabel.document.Dimensions(qr.size, qr.size)
		position = nutrilabel.templates.preset_position(
			preset, self.document.layout.dimensions, size, qr.position,
		)
		return self.update({"qr": {"position": dataclasses.asdict(position)}})

	def seed_nutrition(self, records: list[dict], servings: float | None = None) -> LabelDocument:
		facts = nutrilabel.nutrition.seed_nutrition_facts(records, servings)
		return self.update({"nutrition": [dataclasses.asdict(fact) for fact in facts]})

	def _commit(self, document: LabelDocument) -> None:
		self.document = document
		self.dirty = True
		if self.controller is not None:
			self.controller.set_document(document)
		self.scheduler.schedule(AUTOSAVE_TASK, self.autosave_delay, self.save)
		self.scheduler.schedule(VALIDATION_TASK, self.validation_delay, self.revalidate)

	#============================================
	def revalidate(self) -> nutrilabel.validation.ValidationResult:
		self.validation = nutrilabel.validation.validate(self.document, self.registry)
		return self.validation

	def save(self) -> bool:
		"""
		Persist the document if it changed since the last save.

		Returns:
			True when persist was called.
		"""
		if self.persist is None or not self.dirty:
			return False
		self.persist(nutrilabel.document.document_to_dict(self.document))
		self.dirty = False
		self.save_count += 1
		logger.debug("Auto-saved document %s", self.document.id)
		return True

	def tick(self, now: float | None = None) -> list[str]:
		return self.scheduler.run_due(now)

	def flush(self) -> list[str]:
		return self.scheduler.run_all()
