# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
Phase 2 tests — placement resolution and card domain models.
"""

import pytest

# ─── resolve ─────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("p", [0, 12.5, 33.3, 50, 99.9, 100])
def test_resolve_is_linear_in_percent(p):
    from cardengine.modules.rendering.placement import resolve
    assert resolve(p, 3000) == pytest.approx(p / 100 * 3000)
    assert resolve(p, 4200) == pytest.approx(p / 100 * 4200)


def test_resolve_uses_default_for_none():
    from cardengine.modules.rendering.placement import resolve
    assert resolve(None, 4200, default=30) == pytest.approx(1260)


def test_resolve_placement_defaults_on_nominal_canvas():
    from cardengine.models.card import PlacementConfig
    from cardengine.modules.rendering.placement import resolve_placement

    layout = resolve_placement(PlacementConfig(), 3000, 4200)

    assert layout.canvas_size == (3000, 4200)
    assert layout.name_xy == pytest.approx((1500, 1260))
    assert layout.qr_xy == pytest.approx((2400, 2940))
    assert layout.card_class_xy == pytest.approx((600, 3780))
    assert layout.name_style.size == 98
    assert layout.name_style.color == "#000000"
    assert layout.card_class_style.size == 60
    assert layout.card_class_style.color == "#333333"


def test_resolve_placement_uses_configured_values():
    from cardengine.models.card import PlacementConfig
    from cardengine.modules.rendering.placement import resolve_placement

    cfg = PlacementConfig(
        name_position_x=10,
        name_position_y=None,
        qr_position_x=0,
        name_text_size=120,
        card_class_text_color="#abcdef",
    )
    layout = resolve_placement(cfg, 3000, 4200)

    assert layout.name_xy == pytest.approx((300, 1260))
    # 0 is a real value, not "absent"
    assert layout.qr_xy[0] == 0
    assert layout.name_style.size == 120
    assert layout.card_class_style.color == "#abcdef"


def test_resolve_placement_follows_actual_template_size():
    from cardengine.models.card import PlacementConfig
    from cardengine.modules.rendering.placement import resolve_placement

    cfg = PlacementConfig(name_position_x=50, name_position_y=50)
    small = resolve_placement(cfg, 300, 420)
    big = resolve_placement(cfg, 3000, 4200)

    assert small.name_xy == pytest.approx((150, 210))
    assert big.name_xy == pytest.approx((1500, 2100))


# ─── Models ──────────────────────────────────────────────────────────────────

def test_fractional_text_sizes_are_accepted_and_rounded():
    from cardengine.models.card import EventCardConfig
    from cardengine.modules.rendering.placement import resolve_placement

    event = EventCardConfig.model_validate({
        "id": 9,
        "name_text_size": 98.6,
        "card_class_text_size": 59.4,
    })
    layout = resolve_placement(event.placement(), 3000, 4200)

    assert event.name_text_size == 98.6
    assert layout.name_style.size == 99
    assert layout.card_class_style.size == 59


def test_event_config_ignores_unrelated_fields():
    from cardengine.models.card import EventCardConfig

    event = EventCardConfig.model_validate({
        "id": 4,
        "event_name": "Send-off",
        "venue": "Mlimani City",
        "card_design_path": "designs/4.png",
        "qr_position_x": 75,
    })
    assert event.has_template
    assert event.placement().qr_position_x == 75
    assert event.placement().value("qr_position_y") == 70


def test_card_type_flags_null_handling():
    from cardengine.models.card import CardTypeFlags

    flags = CardTypeFlags.model_validate(
        {"show_guest_name": None, "show_card_class": None, "show_qr_code": None}
    )
    assert flags.show_guest_name is True
    assert flags.show_card_class is False
    assert flags.show_qr_code is False

    hidden = CardTypeFlags.model_validate({"show_guest_name": False})
    assert hidden.show_guest_name is False


def test_guest_card_and_qr_markers():
    from cardengine.models.card import Guest

    g = Guest.model_validate({
        "id": 1,
        "name": "Neema",
        "guest_card_path": "cards/1.png",
        "qr_code_path": "qr/1.png",
        "card_class": {"name": "VIP", "max_guests": 2},
    })
    assert g.has_card
    assert g.has_qr_source
    assert g.card_class.name == "VIP"

    assert not g.model_copy(update={"guest_card_path": ""}).has_card


def test_template_fresh_canvas_is_a_copy(template_img):
    from cardengine.models.card import CardTemplate

    template = CardTemplate(event_id=1, image=template_img)
    canvas = template.fresh_canvas()
    canvas[:] = 0

    assert template.image.max() > 0
    assert (template.width, template.height) == (300, 420)


def test_load_template_rejects_missing_and_garbage():
    from cardengine.api.middleware.error_handler import TemplateUnavailableError
    from cardengine.modules.rendering.template_loader import load_template

    with pytest.raises(TemplateUnavailableError):
        load_template(1, None)
    with pytest.raises(TemplateUnavailableError):
        load_template(1, "data:image/png;base64,aGVsbG8=")


def test_load_template_decodes_data_url(design_data_url):
    from cardengine.modules.rendering.template_loader import load_template

    template = load_template(9, design_data_url)
    assert template.event_id == 9
    assert template.image.shape == (420, 300, 3)
