"""Email templates for OTP delivery and product welcome notifications."""

from dataclasses import dataclass

from .models import Product


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    html: str
    text: str


def otp_email(code: str, ttl_minutes: int) -> EmailTemplate:
    html = f"""
      <!DOCTYPE html>
      <html>
        <head>
          <meta charset="utf-8">
          <meta name="viewport" content="width=device-width, initial-scale=1.0">
        </head>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
          <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color: #4CAF50;">Mã OTP của bạn là:</h2>
            <div style="background-color: #f4f4f4; padding: 12px; text-align: center; margin: 12px 0; border-radius: 5px;">
              <h1 style="color: #4CAF50; margin: 0; font-size: 24px; letter-spacing: 5px;">{code}</h1>
            </div>
            <p>Mã OTP sẽ hết hạn sau {ttl_minutes} phút.</p>
          </div>
        </body>
      </html>
    """
    return EmailTemplate(
        subject="Mã OTP tải file",
        html=html,
        text=f"Mã OTP của bạn là: {code}. Mã OTP sẽ hết hạn sau {ttl_minutes} phút.",
    )


def welcome_email(product: Product) -> EmailTemplate:
    link = f"https://nestora.edu.vn/product/{product.id}"
    html = f"""
      <!DOCTYPE html>
      <html>
        <head>
          <meta charset="utf-8">
        </head>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
          <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
            <p>Email của thầy cô đã được thêm vào hệ thống. Thầy cô hãy tải file tại đây:
              <a href="{link}" style="color: #4CAF50;">{link}</a></p>
          </div>
        </body>
      </html>
    """
    return EmailTemplate(
        subject=product.name,
        html=html,
        text=f"Email của thầy cô đã được thêm vào hệ thống. Thầy cô hãy tải file tại đây: {link}",
    )
