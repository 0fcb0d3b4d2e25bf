"""
Validation rules evaluated against a label document.

Rules are plain functions taking a document and returning a list of
ValidationIssue. Each rule is registered with a severity and, optionally,
the regulatory standards it applies to. Validation never raises for data
problems; it returns them.
"""

# Standard Library
import dataclasses
import urllib.parse

# local repo modules
import nutrilabel.config
import nutrilabel.document


LabelDocument = nutrilabel.document.LabelDocument
REGULATORY_STANDARDS = nutrilabel.config.REGULATORY_STANDARDS


@dataclasses.dataclass(frozen=True)
class ValidationIssue:
	field: str
	message: str
	suggestion: str | None = None


@dataclasses.dataclass(frozen=True)
class ValidationResult:
	errors: tuple[ValidationIssue, ...] = ()
	warnings: tuple[ValidationIssue, ...] = ()

	@property
	def is_valid(self) -> bool:
		return not self.errors

	@property
	def export_allowed(self) -> bool:
		return self.is_valid


@dataclasses.dataclass(frozen=True)
class RegisteredRule:
	name: str
	severity: str
	check: object
	standards: frozenset[str] | None = None

	def applies_to(self, standard: str) -> bool:
		return self.standards is None or standard in self.standards


class RuleRegistry:
	"""
	Ordered collection of validation rules.
	"""

	def __init__(self) -> None:
		self._rules: list[RegisteredRule] = []

	def register(
		self,
		name: str,
		check,
		severity: str = "error",
		standards: list[str] | None = None,
	) -> None:
		"""
		Register a rule, replacing any rule with the same name.

		Args:
			name: Unique rule name.
			check: Callable(document) -> list[ValidationIssue].
			severity: "error" or "warning".
			standards: Standards the rule applies to, None for all.
		"""
		if severity not in ("error", "warning"):
			raise ValueError(f"Unknown severity: {severity}")
		scope = None
		if standards is not None:
			unknown = set(standards) - set(REGULATORY_STANDARDS)
			if unknown:
				raise ValueError(f"Unknown standards: {sorted(unknown)}")
			scope = frozenset(standards)
		self.unregister(name)
		self._rules.append(RegisteredRule(name=name, severity=severity, check=check, standards=scope))

	def unregister(self, name: str) -> None:
		self._rules = [rule for rule in self._rules if rule.name != name]

	def rules_for(self, standard: str) -> list[RegisteredRule]:
		return [rule for rule in self._rules if rule.applies_to(standard)]

	def names(self) -> list[str]:
		return [rule.name for rule in self._rules]

	def copy(self) -> "RuleRegistry":
		registry = RuleRegistry()
		registry._rules = list(self._rules)
		return registry


#============================================
def is_valid_url(value: str) -> bool:
	"""
	Check for an absolute http or https URL.

	Args:
		value: Candidate URL.

	Returns:
		True when the URL has an http(s) scheme and a host.
	"""
	value = (value or "").strip()
	if not value:
		return False
	parsed = urllib.parse.urlparse(value)
	return parsed.scheme in ("http", "https") and bool(parsed.netloc)


#============================================
def format_url(value: str) -> str:
	"""
	Prefix https:// when no scheme is present.

	Args:
		value: URL text.

	Returns:
		Formatted URL or empty string.
	"""
	value = (value or "").strip()
	if not value:
		return ""
	lowered = value.lower()
	if lowered.startswith("http://") or lowered.startswith("https://"):
		return value
	return f"https://{value}"


def rule_product_name(document: LabelDocument) -> list[ValidationIssue]:
	if document.product_name.primary.strip():
		return []
	return [ValidationIssue("product_name", "Product name is required")]


def rule_brand_name(document: LabelDocument) -> list[ValidationIssue]:
	if document.brand_name.strip():
		return []
	return [
		ValidationIssue(
			"brand_name",
			"Brand name is recommended",
			"Add your brand name for better identification",
		)
	]


def rule_fda_nutrition(document: LabelDocument) -> list[ValidationIssue]:
	if document.nutrition:
		return []
	return [ValidationIssue("nutrition", "Nutrition facts are required for FDA compliance")]


def rule_qr_url(document: LabelDocument) -> list[ValidationIssue]:
	qr = document.qr
	if qr is None or qr.content_type != "url":
		return []
	if is_valid_url(qr.content):
		return []
	suggestion = format_url(qr.content) or None
	if not qr.content.strip():
		message = "QR code URL is empty"
	else:
		message = "QR code URL must start with http:// or https://"
	return [ValidationIssue("qr.content", message, suggestion)]


def rule_secondary_name(document: LabelDocument) -> list[ValidationIssue]:
	if document.product_name.secondary.strip():
		return []
	return [
		ValidationIssue(
			"product_name.secondary",
			"Arabic product name is expected on SFDA labels",
			"Fill in the secondary product name",
		)
	]


#============================================
def build_default_registry() -> RuleRegistry:
	"""
	Build the standard rule set.

	Returns:
		RuleRegistry with the built-in rules.
	"""
	registry = RuleRegistry()
	registry.register("product_name_required", rule_product_name, "error")
	registry.register("brand_name_recommended", rule_brand_name, "warning")
	registry.register("fda_nutrition_required", rule_fda_nutrition, "error", standards=["FDA"])
	registry.register("qr_url_format", rule_qr_url, "warning")
	registry.register("sfda_secondary_name", rule_secondary_name, "warning", standards=["SFDA"])
	return registry


DEFAULT_REGISTRY = build_default_registry()


#============================================
def validate(document: LabelDocument, registry: RuleRegistry | None = None) -> ValidationResult:
	"""
	Evaluate every applicable rule against a document.

	Args:
		document: Document to validate.
		registry: Rule registry, defaults to the built-in rules.

	Returns:
		ValidationResult with errors and warnings in rule order.
	"""
	if registry is None:
		registry = DEFAULT_REGISTRY
	errors: list[ValidationIssue] = []
	warnings: list[ValidationIssue] = []
	for rule in registry.rules_for(document.regulatory_standard):
		issues = rule.check(document)
		if rule.severity == "error":
			errors.extend(issues)
		else:
			warnings.extend(issues)
	return ValidationResult(errors=tuple(errors), warnings=tuple(warnings))
