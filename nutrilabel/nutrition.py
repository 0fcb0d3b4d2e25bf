"""
Nutrition facts seeding from pre-computed nutrient records.
"""

# Standard Library
import decimal

# local repo modules
import nutrilabel.document


NutritionFact = nutrilabel.document.NutritionFact


#============================================
def round_half_up(value: float) -> int:
	"""
	Round to the nearest integer, halves away from zero.

	Args:
		value: Input value.

	Returns:
		Rounded integer.
	"""
	quantized = decimal.Decimal(str(value)).quantize(decimal.Decimal("1"), rounding=decimal.ROUND_HALF_UP)
	return int(quantized)


#============================================
def per_serving(total: float, servings: float) -> int:
	"""
	The single per-serving formula used everywhere.

	Args:
		total: Whole-container amount.
		servings: Servings per container; values <= 0 count as 1.

	Returns:
		Per-serving amount rounded half up.
	"""
	if servings <= 0:
		servings = 1
	return round_half_up(total / servings)


#============================================
def seed_nutrition_facts(
	records: list[dict],
	servings: float | None = None,
) -> tuple[NutritionFact, ...]:
	"""
	Convert nutrient records from the data provider into nutrition facts.

	Records are read-only dicts with name, amount, unit and optional
	daily_value_percent. When servings is given, amounts are treated as
	container totals and reduced with per_serving. Records without a name
	are skipped.

	Args:
		records: Flat nutrient records.
		servings: Optional servings per container.

	Returns:
		Tuple of NutritionFact in provider order.
	"""
	facts: list[NutritionFact] = []
	for record in records:
		name = str(record.get("name", "")).strip()
		if not name:
			continue
		amount = float(record.get("amount", 0.0) or 0.0)
		if servings is not None:
			amount = float(per_serving(amount, servings))
		daily_value = record.get("daily_value_percent")
		if daily_value is not None:
			daily_value = float(round_half_up(float(daily_value)))
		facts.append(
			NutritionFact(
				name=name,
				amount=amount,
				unit=str(record.get("unit", "")),
				daily_value_percent=daily_value,
			)
		)
	return tuple(facts)


#============================================
def format_amount(value: float) -> str:
	"""
	Format a nutrient amount without trailing zeros.

	Args:
		value: Amount.

	Returns:
		Display string.
	"""
	return f"{value:g}"
