import os
import sys
import unittest


sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from playshield.classifiers import (  # noqa: E402
    KeywordClassifier,
    default_alert_classifier,
    default_confirm_classifier,
)


class KeywordClassifierTests(unittest.TestCase):
    def test_confirm_catches_social_engineering(self):
        classifier = default_confirm_classifier()
        self.assertTrue(classifier.matches("Your Chrome is out of date. Update now?"))
        self.assertTrue(classifier.matches("VIRUS DETECTED! Clean your device?"))
        self.assertTrue(classifier.matches("Do you really want to leave this page?"))

    def test_confirm_lets_plain_questions_through(self):
        classifier = default_confirm_classifier()
        self.assertFalse(classifier.matches("Resume from 12:04?"))

    def test_alert_catches_adblock_and_vpn_nags(self):
        classifier = default_alert_classifier()
        self.assertTrue(classifier.matches("Please disable your AdBlocker"))
        self.assertTrue(classifier.matches("Use a VPN to keep watching"))
        self.assertTrue(classifier.matches("Ads keep this site free"))

    def test_everyday_words_containing_keywords_are_excluded(self):
        classifier = default_alert_classifier()
        self.assertFalse(classifier.matches("Episode loaded"))
        self.assertFalse(classifier.matches("Subtitles are ready, download complete"))
        self.assertTrue(classifier.matches("Episode loaded. Now disable your blocker"))

    def test_keywords_match_inside_compound_words(self):
        confirm = default_confirm_classifier()
        alert = default_alert_classifier()
        self.assertTrue(confirm.matches("Your antivirus found 3 threats. Clean now?"))
        self.assertTrue(confirm.matches("Please reinstall the video plugin"))
        self.assertTrue(alert.matches("Turn off your AntiAdblock"))

    def test_word_start_mode_is_opt_in(self):
        classifier = KeywordClassifier(["virus"], word_start=True)
        self.assertTrue(classifier.matches("Virus found"))
        self.assertFalse(classifier.matches("antivirus found"))

    def test_exclusions_are_data(self):
        classifier = KeywordClassifier(["ad"], exclusions=["Shadow", "shadow"])
        self.assertEqual(classifier.exclusions, ("shadow",))
        self.assertFalse(classifier.matches("Shadow mode"))
        self.assertTrue(classifier.matches("Shadow ads"))

    def test_none_and_non_string_messages(self):
        classifier = default_confirm_classifier()
        self.assertFalse(classifier.matches(None))
        self.assertFalse(classifier.matches(42))

    def test_custom_keywords_are_data(self):
        classifier = KeywordClassifier(["  Casino ", "casino", ""])
        self.assertEqual(classifier.keywords, ("casino",))
        self.assertTrue(classifier.matches("Free CASINO spins"))

    def test_empty_keyword_list_never_matches(self):
        self.assertFalse(KeywordClassifier([]).matches("anything at all"))


if __name__ == "__main__":
    unittest.main()
