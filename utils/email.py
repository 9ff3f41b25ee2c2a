# utils/email.py
import os
from decimal import Decimal
from typing import Iterable

import requests
from dotenv import load_dotenv

load_dotenv()

BREVO_KEY = os.getenv("BREVO_API_KEY")
PAYOUT_EMAILS_ENABLED = os.getenv("PAYOUT_EMAILS_ENABLED", "false").lower() == "true"


def payout_email_html(supplier_name: str, amount: Decimal, order_numbers: Iterable[str]) -> str:
     order_numbers = list(order_numbers)
     orders = ""
     if order_numbers:
          orders = "<p>Orders paid:</p><ul>" + "".join(f"<li>{n}</li>" for n in order_numbers) + "</ul>"
     return f"""
          <p>Hello {supplier_name},</p>
          <p>You have received a payment of <strong>${Decimal(amount):.2f}</strong> for your delivered products.</p>
          {orders}
          <p>Thank you for your partnership!</p>
     """


def send_payout_email(to_email: str, supplier_name: str, amount: Decimal, order_numbers: Iterable[str]):
     if not BREVO_KEY:
          raise Exception("BREVO_API_KEY is not set")

     response = requests.post(
          "https://api.brevo.com/v3/smtp/email",
          headers={
               "api-key": BREVO_KEY,
               "Content-Type": "application/json",
          },
          json={
               "sender": {"name": "Sportify", "email": "noreply@sportify.shop"},
               "to": [{"email": to_email}],
               "subject": "Payment Received for Your Orders",
               "htmlContent": payout_email_html(supplier_name, amount, order_numbers),
          },
          timeout=10,
     )
     if response.status_code not in (200, 201):
          raise Exception(f"Brevo error: {response.text}")
