# dormitory/tests/test_invoices.py

from datetime import date, timedelta
from decimal import Decimal

from django.test import TestCase, override_settings
from django.utils import timezone

from dormitory.exceptions import Conflict, InvalidState, NotFound, ValidationError
from dormitory.models import ActivityLog, Contract, Invoice
from dormitory.services import contracts, invoices
from dormitory.services.expiration import expire_invoices
from dormitory.states import ContractStatus, InvoiceStatus

from .helpers import contract_kwargs, make_building, make_room, make_student


class CreateInvoiceTests(TestCase):

    def setUp(self):
        self.building = make_building()
        self.room = make_room(self.building, "105", price=Decimal("1500000"))

    def test_total_is_room_fee_plus_utilities_plus_service(self):
        invoice = invoices.create_invoice(room_id=self.room.pk, invoice_month="2024-03",
                                          electricity_units=100, water_units=5)
        self.assertEqual(invoice.room_fee, Decimal("1500000"))
        self.assertEqual(invoice.electric_fee, Decimal("200000"))
        self.assertEqual(invoice.water_fee, Decimal("50000"))
        self.assertEqual(invoice.service_fee, Decimal("100000"))
        self.assertEqual(invoice.total_amount, Decimal("1850000"))
        self.assertEqual(invoice.payment_status, InvoiceStatus.PENDING)

    def test_explicit_zero_service_fee_is_kept(self):
        invoice = invoices.create_invoice(room_id=self.room.pk, invoice_month="2024-03", service_fee=Decimal("0"))
        self.assertEqual(invoice.service_fee, Decimal("0"))
        self.assertEqual(invoice.total_amount, Decimal("1500000"))

    @override_settings(ELECTRICITY_UNIT_PRICE=Decimal("3000"), WATER_UNIT_PRICE=Decimal("1"))
    def test_rates_come_from_settings(self):
        invoice = invoices.create_invoice(room_id=self.room.pk, invoice_month="2024-03",
                                          electricity_units=10, water_units=10)
        self.assertEqual(invoice.electric_fee, Decimal("30000"))
        self.assertEqual(invoice.water_fee, Decimal("10"))

    def test_number_month_and_default_due_date(self):
        invoice = invoices.create_invoice(room_id=self.room.pk, invoice_month="2024-03-17")
        self.assertEqual(invoice.invoice_number, f"INV-{self.building.pk}105-202403")
        self.assertEqual(invoice.invoice_month, date(2024, 3, 1))
        self.assertEqual(invoice.due_date, date(2024, 3, 15))

    def test_second_invoice_for_the_same_month_is_rejected(self):
        first = invoices.create_invoice(room_id=self.room.pk, invoice_month="2024-03",
                                        electricity_units=10, due_date=date(2024, 3, 15))
        with self.assertRaises(Conflict) as ctx:
            invoices.create_invoice(room_id=self.room.pk, invoice_month=date(2024, 3, 9), electricity_units=99)
        self.assertEqual(ctx.exception.code, "duplicate_invoice")

        self.assertEqual(Invoice.objects.count(), 1)
        first_again = Invoice.objects.get()
        self.assertEqual(first_again.electricity_units, 10)
        self.assertEqual(first_again.total_amount, first.total_amount)

    def test_other_rooms_and_months_are_independent(self):
        invoices.create_invoice(room_id=self.room.pk, invoice_month="2024-03")
        invoices.create_invoice(room_id=self.room.pk, invoice_month="2024-04")
        invoices.create_invoice(room_id=make_room(self.building, "106").pk, invoice_month="2024-03")
        self.assertEqual(Invoice.objects.count(), 3)

    def test_missing_room(self):
        with self.assertRaises(NotFound):
            invoices.create_invoice(room_id=99999, invoice_month="2024-03")

    def test_amount_beyond_column_range(self):
        with self.assertRaises(ValidationError):
            invoices.create_invoice(room_id=self.room.pk, invoice_month="2024-03", water_units=10_000_000)
        self.assertFalse(Invoice.objects.exists())

    def test_bad_month(self):
        with self.assertRaises(ValidationError):
            invoices.normalize_month("March")
        self.assertEqual(invoices.normalize_month(date(2024, 2, 29)), date(2024, 2, 1))

    def test_due_date_before_month(self):
        with self.assertRaises(ValidationError):
            invoices.create_invoice(room_id=self.room.pk, invoice_month="2024-03", due_date=date(2024, 2, 20))


class InvoiceStatusTests(TestCase):

    def setUp(self):
        self.room = make_room()
        self.invoice = invoices.create_invoice(room_id=self.room.pk, invoice_month="2024-03")

    def test_paid_stamps_payment_date(self):
        invoice = invoices.update_invoice_status(self.invoice.pk, InvoiceStatus.PAID, payment_method="cash")
        self.assertIsNotNone(invoice.payment_date)
        self.assertEqual(invoice.payment_method, "cash")

    def test_leaving_paid_clears_payment_date(self):
        invoices.update_invoice_status(self.invoice.pk, InvoiceStatus.PAID)
        invoice = invoices.update_invoice_status(self.invoice.pk, InvoiceStatus.PENDING)
        self.assertIsNone(invoice.payment_date)

    def test_paid_cannot_become_overdue(self):
        invoices.update_invoice_status(self.invoice.pk, InvoiceStatus.PAID)
        with self.assertRaises(InvalidState):
            invoices.update_invoice_status(self.invoice.pk, InvoiceStatus.OVERDUE)

    def test_invoice_not_yet_due_cannot_be_marked_overdue(self):
        today = timezone.localdate()
        invoice = invoices.create_invoice(
            room_id=make_room(number="102").pk, invoice_month=today, due_date=today + timedelta(days=30),
        )
        with self.assertRaises(InvalidState) as ctx:
            invoices.update_invoice_status(invoice.pk, InvoiceStatus.OVERDUE)
        self.assertEqual(ctx.exception.code, "invoice_not_due")
        invoice.refresh_from_db()
        self.assertEqual(invoice.payment_status, InvoiceStatus.PENDING)

    def test_overdue_returns_to_pending_only_after_the_due_date_moves(self):
        invoice = invoices.update_invoice_status(self.invoice.pk, InvoiceStatus.OVERDUE)
        self.assertEqual(invoice.payment_status, InvoiceStatus.OVERDUE)

        with self.assertRaises(InvalidState) as ctx:
            invoices.update_invoice_status(self.invoice.pk, InvoiceStatus.PENDING)
        self.assertEqual(ctx.exception.code, "invoice_past_due")

        invoices.update_invoice(self.invoice.pk, due_date=timezone.localdate() + timedelta(days=7))
        invoice = invoices.update_invoice_status(self.invoice.pk, InvoiceStatus.PENDING)
        self.assertEqual(invoice.payment_status, InvoiceStatus.PENDING)

    def test_unknown_status(self):
        with self.assertRaises(ValidationError):
            invoices.update_invoice_status(self.invoice.pk, "refunded")

    def test_no_side_effects_on_room_or_contracts(self):
        student = make_student(status="active")
        Contract.objects.create(
            contract_number="C-1", student=student, room=self.room, start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31), deposit_amount=0, monthly_fee=0,
        )
        room_before = (self.room.current_occupancy, self.room.status)
        invoices.update_invoice_status(self.invoice.pk, InvoiceStatus.PAID)
        self.room.refresh_from_db()
        self.assertEqual((self.room.current_occupancy, self.room.status), room_before)
        self.assertEqual(Contract.objects.get().status, ContractStatus.ACTIVE)

    def test_update_recomputes_total(self):
        invoice = invoices.update_invoice(self.invoice.pk, electricity_units=10)
        self.assertEqual(invoice.total_amount, self.invoice.total_amount + Decimal("20000"))

    def test_paid_invoice_amounts_are_locked(self):
        invoices.update_invoice_status(self.invoice.pk, InvoiceStatus.PAID)
        with self.assertRaises(InvalidState):
            invoices.update_invoice(self.invoice.pk, water_units=3)
        invoice = invoices.update_invoice(self.invoice.pk, payment_method="bank transfer")
        self.assertEqual(invoice.payment_method, "bank transfer")


class InvoiceExpirationTests(TestCase):

    def setUp(self):
        self.room = make_room()
        self.invoice = invoices.create_invoice(room_id=self.room.pk, invoice_month="2024-03",
                                               due_date=date(2024, 3, 15))

    def test_pending_past_due_becomes_overdue_once(self):
        items = expire_invoices(date(2024, 3, 20))
        self.assertEqual([item["id"] for item in items], [self.invoice.pk])
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.payment_status, InvoiceStatus.OVERDUE)

        self.assertEqual(expire_invoices(date(2024, 3, 20)), [])
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.payment_status, InvoiceStatus.OVERDUE)

    def test_not_yet_due_and_paid_invoices_are_untouched(self):
        self.assertEqual(expire_invoices(date(2024, 3, 15)), [])
        invoices.update_invoice_status(self.invoice.pk, InvoiceStatus.PAID)
        self.assertEqual(expire_invoices(date(2024, 4, 1)), [])

    def test_recipients_are_the_students_billed_for_the_month(self):
        billed = make_student("SV001", status="active")
        newcomer = make_student("SV002", status="active")
        left_early = make_student("SV003", status="inactive")
        Contract.objects.create(
            contract_number="C-1", student=billed, room=self.room, start_date=date(2024, 1, 1),
            end_date=date(2024, 3, 31), status=ContractStatus.EXPIRED, deposit_amount=0, monthly_fee=0,
        )
        Contract.objects.create(
            contract_number="C-2", student=newcomer, room=self.room, start_date=date(2024, 4, 1),
            end_date=date(2024, 12, 31), deposit_amount=0, monthly_fee=0,
        )
        early = Contract.objects.create(
            contract_number="C-3", student=left_early, room=self.room, start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31), status=ContractStatus.TERMINATED, deposit_amount=0, monthly_fee=0,
        )
        Contract.objects.filter(pk=early.pk).update(terminated_at="2024-02-10T10:00:00Z")

        items = expire_invoices(date(2024, 3, 20))

        self.assertEqual([r["student_id"] for r in items[0]["recipients"]], [billed.pk])
        self.assertEqual(items[0]["recipients"][0]["email"], billed.email)

    def test_due_date_moves_past_the_month(self):
        invoice = invoices.update_invoice(self.invoice.pk, due_date=self.invoice.due_date + timedelta(days=30))
        self.assertEqual(invoice.due_date, date(2024, 4, 14))


class PaymentSubmissionTests(TestCase):

    def setUp(self):
        self.today = timezone.localdate()
        self.room = make_room()
        self.student = make_student("SV001", status="active")
        contracts.create_contract(**contract_kwargs(self.student, self.room))
        self.invoice = invoices.create_invoice(room_id=self.room.pk, invoice_month=self.today)

    def test_billed_student_submits_payment(self):
        with self.captureOnCommitCallbacks(execute=True):
            invoice = invoices.submit_payment(self.invoice.pk, self.student, "bank transfer", self.student.user)
        self.assertEqual(invoice.payment_status, InvoiceStatus.PENDING)
        self.assertEqual(invoice.payment_method, "bank transfer")
        self.assertIsNotNone(invoice.payment_submitted_at)
        self.assertTrue(ActivityLog.objects.filter(action="submit_payment", entity_id=invoice.pk).exists())

    def test_admin_confirmation_keeps_the_submitted_method(self):
        invoices.submit_payment(self.invoice.pk, self.student, "momo")
        invoice = invoices.update_invoice_status(self.invoice.pk, InvoiceStatus.PAID)
        self.assertEqual((invoice.payment_status, invoice.payment_method), (InvoiceStatus.PAID, "momo"))

    def test_paid_invoice_is_refused(self):
        invoices.update_invoice_status(self.invoice.pk, InvoiceStatus.PAID)
        with self.assertRaises(InvalidState) as ctx:
            invoices.submit_payment(self.invoice.pk, self.student, "cash")
        self.assertEqual(ctx.exception.code, "invoice_paid")

    def test_payment_method_is_required(self):
        with self.assertRaises(ValidationError):
            invoices.submit_payment(self.invoice.pk, self.student, "  ")

    def test_only_billed_students_may_submit(self):
        with self.assertRaises(NotFound) as ctx:
            invoices.submit_payment(self.invoice.pk, make_student("SV002", status="active"), "cash")
        self.assertEqual(ctx.exception.code, "invoice")

        earlier = invoices.create_invoice(room_id=self.room.pk, invoice_month="2024-03")
        with self.assertRaises(NotFound):
            invoices.submit_payment(earlier.pk, self.student, "cash")


class InvoiceVisibilityTests(TestCase):

    def setUp(self):
        self.room = make_room()
        self.student = make_student("SV001", status="active")
        self.contract = Contract.objects.create(
            contract_number="C-1", student=self.student, room=self.room, start_date=date(2024, 3, 10),
            end_date=date(2024, 5, 31), deposit_amount=0, monthly_fee=0,
        )
        self.bills = {
            month: invoices.create_invoice(room_id=self.room.pk, invoice_month=month)
            for month in ("2024-02", "2024-03", "2024-05", "2024-06")
        }

    def visible(self):
        qs = invoices.visible_to_student(Invoice.objects.all(), self.student)
        return sorted(f"{invoice.invoice_month:%Y-%m}" for invoice in qs)

    def test_only_months_the_contract_covered(self):
        self.assertEqual(self.visible(), ["2024-03", "2024-05"])

    def test_early_termination_hides_later_months(self):
        Contract.objects.filter(pk=self.contract.pk).update(
            status=ContractStatus.TERMINATED, terminated_at="2024-04-05T10:00:00Z",
        )
        self.assertEqual(self.visible(), ["2024-03"])

    def test_other_rooms_stay_hidden(self):
        invoices.create_invoice(room_id=make_room(number="102").pk, invoice_month="2024-03")
        self.assertEqual(self.visible(), ["2024-03", "2024-05"])
