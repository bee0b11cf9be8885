import unittest
from flask import Flask

from goldledger.extensions import db
from goldledger.models import BusinessSettings, LedgerEvent
from goldledger.services import settings_service
from goldledger.validation import ValidationError


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = Flask(__name__)
        cls.app.config.update(
            SECRET_KEY="test",
            SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
            SQLALCHEMY_TRACK_MODIFICATIONS=False,
            TESTING=True,
            GOLD_DEFAULT_CURRENCY="GHS",
            GOLD_RETRY_BACKOFF=0,
        )
        db.init_app(cls.app)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        from goldledger import models  # noqa: F401
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(LedgerEvent).delete()
        db.session.query(BusinessSettings).delete()
        db.session.commit()

    def test_get_settings_creates_defaults_once(self):
        first = settings_service.get_settings()
        db.session.commit()
        second = settings_service.get_settings()

        self.assertEqual(first.id, second.id)
        self.assertEqual(db.session.query(BusinessSettings).count(), 1)
        self.assertEqual(first.default_currency, "GHS")
        self.assertEqual(first.default_unit, "grams")
        names = [p["name"] for p in first.purity_presets]
        self.assertEqual(names, ["24K", "22K", "18K", "14K", "Raw"])

    def test_resolve_purity_is_case_insensitive(self):
        self.assertAlmostEqual(settings_service.resolve_purity("24k"), 0.999)
        self.assertAlmostEqual(settings_service.resolve_purity(" raw "), 0.85)
        self.assertIsNone(settings_service.resolve_purity("Custom"))
        self.assertIsNone(settings_service.resolve_purity(None))

    def test_update_settings_validates_and_audits(self):
        settings = settings_service.update_settings(
            actor="owner",
            business_name="Golden Sands Trading",
            default_currency="ghs",
            default_unit="ounces",
            purity_presets=[{"name": "23K", "percentage": 0.958}],
        )

        self.assertEqual(settings.business_name, "Golden Sands Trading")
        self.assertEqual(settings.default_currency, "GHS")
        self.assertEqual(settings.default_unit, "ounces")
        self.assertAlmostEqual(settings_service.resolve_purity("23K"), 0.958)
        self.assertIsNone(settings_service.resolve_purity("24K"))
        self.assertEqual(
            db.session.query(LedgerEvent).filter_by(event_type="settings.updated").count(), 1
        )

    def test_update_settings_rejects_bad_values(self):
        bad_updates = [
            {"default_unit": "pounds"},
            {"commodity_type": "silver"},
            {"price_api_source": "bloomberg"},
            {"purity_presets": []},
            {"purity_presets": [{"name": "X", "percentage": 1.5}]},
            {"purity_presets": [{"name": "A", "percentage": 0.5}, {"name": "a", "percentage": 0.6}]},
            {"location_presets": ["in_safe", "garage"]},
            {"business_name": "   "},
            {"unknown_field": 1},
        ]
        for fields in bad_updates:
            with self.subTest(fields=fields):
                with self.assertRaises(ValidationError):
                    settings_service.update_settings(**fields)

        self.assertEqual(settings_service.get_settings().default_unit, "grams")


if __name__ == "__main__":
    unittest.main()
