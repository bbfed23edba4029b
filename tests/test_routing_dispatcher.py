from adas_ops.domain.records import AuditTrail
from adas_ops.domain.routing import RoutingDispatcher
from adas_ops.schemas import OriginSender, RoutingAction, ScrubResult

from .conftest import BrokenAuditLog, RecordingNotifier

TECH = OriginSender(address="tech@example.com", message_id="<abc@mail>")


def _scrub(**data) -> ScrubResult:
    return ScrubResult.model_validate(data)


async def test_scenario_a_matching_lists_confirm_to_shop(dispatcher, notifier, record_store):
    scrub = _scrub(
        shopName="JMD",
        vehicle="2022 Toyota Camry",
        estimateCalibrations=[{"name": "Front Camera"}],
        reportCalibrations=[{"name": "Front Camera"}],
    )

    decision = await dispatcher.route(scrub, TECH, ro_number="12345")

    assert decision.action == RoutingAction.SENT_TO_SHOP
    assert decision.success is True
    assert decision.recipient == "jmd@example.com"
    assert record_store.rows["12345"]["status"] == "Ready"
    assert "Confirmation sent to jmd@example.com" in record_store.rows["12345"]["notes"]

    assert len(notifier.sent) == 1
    message = notifier.sent[0]
    assert message.to == "jmd@example.com"
    assert message.cc == "billing@jmd.example.com"
    assert message.subject == "RO 12345 - Calibration Required - 2022 Toyota Camry"
    assert "Front Camera (Static)" in message.text_body
    assert "YES - 1 ADAS calibration(s) required" in message.text_body


async def test_scenario_b_missing_report_calibrations_go_to_tech(dispatcher, notifier, record_store):
    scrub = _scrub(
        shopName="JMD",
        estimateCalibrations=[{"name": "Front Camera"}, {"name": "Radar"}],
        reportCalibrations=[],
    )

    decision = await dispatcher.route(scrub, TECH, ro_number="12345")

    assert decision.action == RoutingAction.SENT_TO_TECH
    assert decision.success is True
    assert decision.reason == "Estimate suggests 2 calibration(s) but report shows none."
    assert len(notifier.sent) == 1
    message = notifier.sent[0]
    assert message.to == "tech@example.com"
    assert "Front Camera" in message.text_body
    assert "(No calibrations in report)" in message.text_body
    assert record_store.rows["12345"]["status"] == "Needs Attention"
    assert "awaiting corrected report" in record_store.rows["12345"]["notes"]


async def test_scenario_c_verified_without_shop_name_is_manual(dispatcher, notifier, record_store):
    decision = await dispatcher.route(_scrub(shopName=""), TECH, ro_number="12345")

    assert decision.action == RoutingAction.MANUAL_REQUIRED
    assert decision.success is False
    assert decision.error == "shop name not found"
    assert record_store.rows["12345"]["status"] == "Needs Attention"
    assert notifier.sent == []


async def test_scenario_e_unknown_shop_names_the_shop(dispatcher, notifier, record_store):
    decision = await dispatcher.route(
        _scrub(shopName="Unknown Shop LLC"), TECH, ro_number="12345"
    )

    assert decision.action == RoutingAction.MANUAL_REQUIRED
    assert decision.success is False
    assert "Unknown Shop LLC" in decision.error
    assert "Unknown Shop LLC" in record_store.rows["12345"]["notes"]
    assert notifier.sent == []


async def test_partial_shop_name_resolves(dispatcher, notifier):
    decision = await dispatcher.route(_scrub(shopName="Collision Pro"), TECH, ro_number="12345")
    assert decision.success is True
    assert notifier.sent[0].to == "front@collisionpro.example.com"


async def test_no_calibration_confirmation(dispatcher, notifier, tracker):
    decision = await dispatcher.route(_scrub(shopName="JMD", vehicle="2020 Honda Civic"), TECH, ro_number="12345")

    assert decision.success is True
    message = notifier.sent[0]
    assert message.subject == "RO 12345 - No Calibration Needed - 2020 Honda Civic"
    assert "NO - No ADAS calibrations required for this repair" in message.text_body
    assert (await tracker.get_state("12345")).needs_calibration is False


async def test_calibrations_fall_back_to_report_text(dispatcher, notifier, tracker):
    scrub = _scrub(
        shopName="JMD",
        rawRevvText="Front Camera (Dynamic); Blind Spot Radar, SAS Reset (reset)",
        status="ALIGNED",
    )
    await dispatcher.route(scrub, TECH, ro_number="12345")

    text = notifier.sent[0].text_body
    assert "Front Camera (Dynamic)" in text
    assert "Blind Spot Radar (Static)" in text
    assert "SAS Reset (Reset)" in text
    assert "YES - 3 ADAS calibration(s) required" in text
    assert (await tracker.get_state("12345")).needs_calibration is True


async def test_report_pdf_is_attached(dispatcher, notifier):
    await dispatcher.route(_scrub(shopName="JMD"), TECH, ro_number="12345", report_pdf=b"%PDF-1.4")
    attachment = notifier.sent[0].attachments[0]
    assert attachment.filename == "RevvADAS_Report_12345.pdf"
    assert attachment.content == b"%PDF-1.4"


async def test_delivery_failure_leaves_initial_flag_unset(tracker, record_store, audit_trail):
    failing = RecordingNotifier(succeed=False)
    dispatcher = RoutingDispatcher(tracker, failing, record_store, audit_trail=audit_trail)

    decision = await dispatcher.route(_scrub(shopName="JMD"), TECH, ro_number="12345")

    assert decision.action == RoutingAction.SENT_TO_SHOP
    assert decision.success is False
    assert "connection refused" in decision.error
    assert await tracker.should_send_initial_notice("12345") is True
    assert "12345" not in record_store.rows

    failing.succeed = True
    retry = await dispatcher.route(_scrub(shopName="JMD"), TECH, ro_number="12345")
    assert retry.success is True
    assert await tracker.should_send_initial_notice("12345") is False


async def test_repeated_verified_route_does_not_resend(dispatcher, notifier):
    scrub = _scrub(shopName="JMD")
    first = await dispatcher.route(scrub, TECH, ro_number="12345")
    second = await dispatcher.route(scrub, TECH, ro_number="12345")

    assert first.success is True
    assert second.action == RoutingAction.SENT_TO_SHOP
    assert second.success is True
    assert second.error is None
    assert second.reason == "already sent"
    assert len(notifier.sent) == 1


async def test_tech_reviews_are_not_gated(dispatcher, notifier):
    scrub = _scrub(shopName="JMD", estimateCalibrations=["Radar"], reportCalibrations=[])
    await dispatcher.route(scrub, TECH, ro_number="12345")
    await dispatcher.route(scrub, TECH, ro_number="12345")
    assert len(notifier.sent) == 2


async def test_review_without_sender_is_manual(dispatcher, notifier, record_store):
    scrub = _scrub(shopName="JMD", estimateCalibrations=["Radar"], reportCalibrations=[])

    decision = await dispatcher.route(scrub, OriginSender(), ro_number="12345")

    assert decision.action == RoutingAction.MANUAL_REQUIRED
    assert decision.success is False
    assert notifier.sent == []
    assert record_store.rows["12345"]["status"] == "Needs Attention"


async def test_review_sender_with_display_name(dispatcher, notifier):
    scrub = _scrub(estimateCalibrations=["Radar"], reportCalibrations=[])
    sender = OriginSender.model_validate({"from": "Randy Tech <Randy@Example.com>"})

    decision = await dispatcher.route(scrub, sender, ro_number="12345")

    assert decision.recipient == "randy@example.com"
    assert notifier.sent[0].to == "randy@example.com"


async def test_review_lists_at_most_ten_operations(dispatcher, notifier):
    scrub = _scrub(
        estimateCalibrations=["Radar"],
        reportCalibrations=[],
        foundOperations=[{"operation": f"op{i}", "component": "bumper"} for i in range(15)],
    )
    await dispatcher.route(scrub, TECH, ro_number="12345")

    text = notifier.sent[0].text_body
    assert "op9 [bumper]" in text
    assert "op10 [bumper]" not in text


async def test_record_write_failure_after_send_is_queued(dispatcher, notifier, record_store, write_queue):
    record_store.fail_writes = True

    decision = await dispatcher.route(_scrub(shopName="JMD"), TECH, ro_number="12345")

    assert decision.success is True
    assert len(notifier.sent) == 1
    assert await write_queue.count() == 1
    assert (await write_queue.pending())[0].fields["status"] == "Ready"

    record_store.fail_writes = False
    summary = await write_queue.flush(record_store)
    assert summary.replayed == 1
    assert record_store.rows["12345"]["status"] == "Ready"


async def test_route_never_sends_more_than_once(tracker, record_store, audit_trail):
    scrubs = [
        _scrub(shopName="JMD", estimateCalibrations=["A"], reportCalibrations=["A"]),
        _scrub(shopName="JMD", estimateCalibrations=["A", "B"], reportCalibrations=[]),
        _scrub(shopName=""),
        _scrub(shopName="Nowhere Autobody"),
        _scrub(shopName="JMD", status="NEEDS_REVIEW"),
    ]
    for succeed in (True, False):
        for i, scrub in enumerate(scrubs):
            notifier = RecordingNotifier(succeed=succeed)
            dispatcher = RoutingDispatcher(tracker, notifier, record_store, audit_trail=audit_trail)
            await dispatcher.route(scrub, TECH, ro_number=f"{9000 + i}{int(succeed)}")
            assert len(notifier.sent) <= 1


async def test_missing_ro_number_is_manual(dispatcher, notifier):
    decision = await dispatcher.route(_scrub(shopName="JMD"), TECH)
    assert decision.action == RoutingAction.MANUAL_REQUIRED
    assert notifier.sent == []


async def test_strict_dispatcher_sends_inconclusive_scrub_to_tech(tracker, notifier, record_store, audit_trail):
    dispatcher = RoutingDispatcher(tracker, notifier, record_store, audit_trail=audit_trail, strict=True)
    scrub = _scrub(shopName="JMD", estimateCalibrations=["Radar"], reportCalibrations=["Front Camera"])

    decision = await dispatcher.route(scrub, TECH, ro_number="12345")

    assert decision.action == RoutingAction.SENT_TO_TECH


async def test_audit_log_failure_after_send_keeps_decision(tracker, notifier, record_store, write_queue):
    trail = AuditTrail(record_store, log=BrokenAuditLog(), write_queue=write_queue)
    dispatcher = RoutingDispatcher(tracker, notifier, record_store, audit_trail=trail, strict=False)
    scrub = _scrub(
        shopName="JMD",
        estimateCalibrations=[{"name": "Front Camera"}],
        reportCalibrations=[{"name": "Front Camera"}],
    )

    decision = await dispatcher.route(scrub, TECH, ro_number="12345")

    assert decision.action == RoutingAction.SENT_TO_SHOP
    assert decision.success is True
    assert len(notifier.sent) == 1
    assert record_store.rows["12345"]["status"] == "Ready"
    assert await write_queue.count() == 0
