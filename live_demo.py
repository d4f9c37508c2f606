#!/usr/bin/env python
"""
RACEAUTH LIVE DEMO

Walks through the authentication core end to end:
- Registration with strength policy and Argon2id hashing
- Legacy credential upgrade on login
- Forgot-password: OTP issuance, rate limiting, validation
- Reset token redemption and the audit trail

Run with --no-pause to skip the presenter pauses.
"""

import logging
import sys
import time

from raceauth.auth import (
    CredentialManager,
    CredentialRecord,
    InMemoryAccountStore,
    evaluate_password_strength,
)
from raceauth.config import AuthSettings
from raceauth.errors import OTPValidationError, RateLimitedError, WeakPasswordError
from raceauth.integration import EventLogger, create_password_reset_flow
from raceauth.otp import SimulatedEmailSender, format_time_remaining


DEMO_EMAIL = "driver@vipsimracing.example"
DEMO_KEYS = {"demo": "demo-only-sealing-secret-change-me"}

PAUSE = "--no-pause" not in sys.argv


class DemoSender(SimulatedEmailSender):
    """Simulated sender that shows the code on screen, as the inbox would."""

    def send_otp(self, email, code, expiry_minutes):
        super().send_otp(email, code, expiry_minutes)
        self.last_code = code
        print(f"      📧 Inbox of {email}: code {code} (valid {expiry_minutes} min)")


def print_header(title):
    print("\n" + "═" * 70)
    print(f"  {title}")
    print("═" * 70)


def print_step(step_num, description):
    print(f"\n  [{step_num}] {description}")


def pause(message="Press ENTER to continue..."):
    if PAUSE:
        print(f"\n  [PAUSE] {message}")
        input()


def main():
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    settings = AuthSettings(otp_keys=DEMO_KEYS, otp_active_key_id="demo")
    store = InMemoryAccountStore()
    events = EventLogger()
    sender = DemoSender(settings.app_name, delay_range=(0.2, 0.5), failure_rate=0.0)
    credentials = CredentialManager(store, event_logger=events)
    flow = create_password_reset_flow(settings, store, sender=sender, event_logger=events)

    print_header("PART 1: REGISTRATION")

    print_step(1, "Strength policy")
    for candidate in ("Password1!", "password-without-caps1!", "Str0ngP@ssword2024"):
        result = evaluate_password_strength(candidate)
        status = "✓" if result.is_valid else "✗"
        print(f"      {status} {candidate!r:28} score={result.score}  {result.message}")

    print_step(2, "Rejected registration")
    try:
        credentials.register(DEMO_EMAIL, "Password1!")
    except WeakPasswordError as e:
        print(f"      ✗ {e}")

    print_step(3, "Successful registration")
    record = credentials.register(DEMO_EMAIL, "Str0ngP@ssword2024")
    print(f"      ✓ Stored hash: {record.password_hash[:40]}...")

    print_step(4, "Legacy plaintext credential upgraded on login")
    store.upsert(CredentialRecord("legacy@vipsimracing.example", "old-plain-password"))
    credentials.authenticate("legacy@vipsimracing.example", "old-plain-password")
    upgraded = store.find_by_email("legacy@vipsimracing.example").password_hash
    print(f"      ✓ Now stored as: {upgraded[:40]}...")

    pause()

    print_header("PART 2: FORGOT PASSWORD")

    print_step(1, "Request a reset code")
    response = flow.request_code(DEMO_EMAIL)
    print(f"      {response.message}")

    print_step(2, "Immediate second request is refused")
    try:
        flow.request_code(DEMO_EMAIL)
    except RateLimitedError as e:
        print(f"      ✗ {e} (reason: {e.reason})")

    print_step(3, "Wrong code")
    wrong = "000000" if sender.last_code != "000000" else "111111"
    try:
        flow.verify_code(DEMO_EMAIL, wrong)
    except OTPValidationError as e:
        print(f"      ✗ {e}")

    print_step(4, "Correct code")
    grant = flow.verify_code(DEMO_EMAIL, sender.last_code)
    print(f"      ✓ Reset token issued, valid for "
          f"{format_time_remaining(int(grant.expires_at - time.time()))}")

    print_step(5, "Replay of the same code")
    try:
        flow.verify_code(DEMO_EMAIL, sender.last_code)
    except OTPValidationError as e:
        print(f"      ✗ {e}")

    print_step(6, "Set the new password")
    flow.complete_reset(DEMO_EMAIL, grant.token, "Fresh-Lap-Record-2025", "Fresh-Lap-Record-2025")
    ok = credentials.authenticate(DEMO_EMAIL, "Fresh-Lap-Record-2025")
    print(f"      {'✓' if ok else '✗'} Login with new password")

    pause()

    print_header("PART 3: AUDIT TRAIL")
    for event in events.get_all_events():
        print(f"      {event}")

    print("\n  Demo complete.\n")


if __name__ == "__main__":
    main()
