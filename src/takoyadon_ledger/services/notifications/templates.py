"""Message templates for ledger notifications."""

from __future__ import annotations

import html
from dataclasses import dataclass


@dataclass
class RenderedTemplate:
    subject: str
    text_body: str
    html_body: str


def redemption_message(reward_name: str, points_cost: int) -> str:
    return f'You successfully redeemed "{reward_name}" for {points_cost} points!'


def activity_approved_message(description: str, points: int) -> str:
    return f'Your submission "{description}" was approved, earning you {points} points!'


def referral_message(referred_user_identity: str, points: int) -> str:
    return f"Your friend {referred_user_identity} joined Takoyadon. You earned {points} points!"


def adjustment_message(delta: int, reason: str) -> str:
    verb = "added to" if delta > 0 else "deducted from"
    return f"{abs(delta)} points were {verb} your balance: {reason}"


def render_referral_success(referred_user_identity: str, points: int) -> RenderedTemplate:
    """Email sent to a referrer once the referred user has signed up."""

    safe_identity = html.escape(referred_user_identity)
    text_body = "\n".join(
        [
            "Referral Successful!",
            "",
            f"Your friend, {referred_user_identity}, has signed up using your referral code.",
            f"You have been awarded {points} loyalty points!",
            "Thank you for being a loyal customer.",
        ]
    )
    html_body = f"""<html>
  <body>
    <h1>Referral Successful!</h1>
    <p>Your friend, {safe_identity}, has signed up using your referral code.</p>
    <p>You have been awarded {points} loyalty points!</p>
    <p>Thank you for being a loyal customer.</p>
  </body>
</html>"""
    return RenderedTemplate(subject="Referral Successful!", text_body=text_body, html_body=html_body)
