import dataclasses

import pytest

import nutrilabel.document
import nutrilabel.errors
import nutrilabel.metrics
import nutrilabel.preview
import nutrilabel.session
import nutrilabel.templates


session_mod = nutrilabel.session


class FakeClock:
	def __init__(self) -> None:
		self.now = 0.0

	def __call__(self) -> float:
		return self.now


#============================================
def make_session(document, **kwargs):
	clock = FakeClock()
	saved: list[dict] = []
	session = session_mod.EditingSession(
		document,
		persist=saved.append,
		scheduler=session_mod.TaskScheduler(clock),
		**kwargs,
	)
	return session, clock, saved


#============================================
def test_scheduler_replaces_pending_name() -> None:
	clock = FakeClock()
	scheduler = session_mod.TaskScheduler(clock)
	ran = []
	scheduler.schedule("a", 1.0, lambda: ran.append("first"))
	scheduler.schedule("a", 2.0, lambda: ran.append("second"))
	scheduler.schedule("b", 0.5, lambda: ran.append("b"))
	assert scheduler.pending() == ["b", "a"]
	assert scheduler.next_due() == 0.5
	assert scheduler.run_due(1.5) == ["b"]
	assert scheduler.run_due(2.0) == ["a"]
	assert ran == ["b", "second"]
	assert scheduler.next_due() is None
	assert not scheduler.cancel("a")


#============================================
def test_autosave_fires_after_delay(document) -> None:
	session, clock, saved = make_session(document)
	session.update({"brand_name": "Acme Farms"})
	assert session.dirty
	assert session.tick(1.9) == ["validate"]
	assert saved == []
	assert session.tick(2.0) == ["autosave"]
	assert len(saved) == 1
	assert saved[0]["brand_name"] == "Acme Farms"
	assert not session.dirty


#============================================
def test_autosave_is_debounced(document) -> None:
	"""
	Each edit pushes the pending save back.
	"""
	session, clock, saved = make_session(document)
	session.update({"brand_name": "One"})
	clock.now = 1.5
	session.update({"brand_name": "Two"})
	assert "autosave" not in session.tick(2.0)
	assert session.tick(3.5) == ["autosave"]
	assert [item["brand_name"] for item in saved] == ["Two"]
	assert session.save_count == 1


#============================================
def test_validation_is_debounced(document) -> None:
	session, clock, saved = make_session(document)
	assert session.validation.export_allowed
	session.update({"product_name": {"primary": ""}})
	assert session.validation.export_allowed
	assert session.tick(0.3) == ["validate"]
	assert not session.validation.export_allowed


#============================================
def test_invariant_failure_keeps_document(document) -> None:
	session, clock, saved = make_session(document)
	with pytest.raises(nutrilabel.errors.DocumentInvariantError):
		session.update({"layout": {"margins": {"top": 80.0}}})
	assert session.document is document
	assert not session.dirty
	assert session.scheduler.pending() == []


#============================================
def test_logo_and_qr_presets(document) -> None:
	logo = nutrilabel.document.Logo(
		asset_ref="logo.png",
		position=nutrilabel.document.Position(10.0, 100.0),
		dimensions=nutrilabel.document.Dimensions(30.0, 20.0),
	)
	qr = nutrilabel.document.QrSpec(content="https://example.com", position=nutrilabel.document.Position(65.0, 115.0))
	branded = dataclasses.replace(
		document, qr=qr, branding=dataclasses.replace(document.branding, logo=logo),
	)
	session, clock, saved = make_session(branded)
	session.set_logo_position("bottom-right")
	assert session.document.branding.logo.position == nutrilabel.document.Position(60.0, 120.0)
	session.set_qr_position("top-left")
	assert session.document.qr.position == nutrilabel.document.Position(10.0, 10.0)
	session.set_logo_position("custom")
	assert session.document.branding.logo.position == nutrilabel.document.Position(60.0, 120.0)


#============================================
def test_presets_need_a_block(document) -> None:
	session, clock, saved = make_session(document)
	with pytest.raises(ValueError):
		session.set_logo_position("center")
	with pytest.raises(ValueError):
		session.set_qr_position("center")


#============================================
def test_seed_nutrition(document) -> None:
	session, clock, saved = make_session(document)
	records = [
		{"name": "Fiber", "amount": 6.0, "unit": "g", "daily_value_percent": 20.0},
		{"name": "Iron", "amount": 3.0, "unit": "mg"},
	]
	session.seed_nutrition(records, servings=2)
	facts = session.document.nutrition
	assert [(fact.name, fact.amount) for fact in facts] == [("Fiber", 3.0), ("Iron", 2.0)]
	assert facts[0].daily_value_percent == 20.0


#============================================
def test_apply_template_updates_standard(document) -> None:
	session, clock, saved = make_session(document)
	session.apply_template("eu-nutrition")
	assert session.document.regulatory_standard == "EU"
	assert session.document.layout.dimensions == nutrilabel.document.Dimensions(85.0, 120.0)
	assert session.document.layout.template == "eu-nutrition"
	assert session.document.product_name.primary == "Greek Yogurt"

	session.apply_template("organic-natural")
	assert session.document.regulatory_standard == "EU"
	assert session.document.layout.template == "organic-natural"


#============================================
def test_edits_refresh_the_preview(document) -> None:
	controller = nutrilabel.preview.PreviewController(document, metrics=nutrilabel.metrics.FixedAdvanceMetrics())
	session, clock, saved = make_session(document, controller=controller)
	session.update({"product_name": {"primary": "Skyr"}})
	texts = [item.text for item in controller.instructions if item.kind == "text"]
	assert "Skyr" in texts
	assert "Greek Yogurt" not in texts


#============================================
def test_flush_runs_everything(document) -> None:
	session, clock, saved = make_session(document)
	session.update({"net_weight": "1 kg"})
	assert sorted(session.flush()) == ["autosave", "validate"]
	assert len(saved) == 1
	assert session.save() is False


#============================================
@pytest.mark.parametrize("template_id", sorted(nutrilabel.templates.TEMPLATES))
def test_logo_upload_fits_every_template(template_id) -> None:
	"""
	A logo added with only an asset reference lands inside the label.
	"""
	session, clock, saved = make_session(nutrilabel.templates.new_document(template_id))
	session.update({"branding": {"logo": {"asset_ref": "logo.png"}}})
	logo = session.document.branding.logo
	assert logo.asset_ref == "logo.png"
	assert nutrilabel.document.rect_inside(
		logo.position.x,
		logo.position.y,
		logo.dimensions.width,
		logo.dimensions.height,
		session.document.layout.dimensions,
	)
	session.set_logo_position("bottom-right")
	assert session.document.branding.logo.dimensions == logo.dimensions
