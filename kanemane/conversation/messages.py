"""
Bot Reply Texts

Every user-facing string the WhatsApp bot sends, in Indonesian.
Formatting helpers live here too so amounts look the same everywhere.
"""

import random
from decimal import Decimal
from typing import Iterable, Optional

from kanemane.models.ledger import Asset, Currency, to_amount
from kanemane.services.parser.interface import normalize_category


def format_money(amount, currency: Currency) -> str:
    """
    "¥1.500", "Rp50.000", "¥1.500,50".

    Dots group thousands; cents are shown only when non-zero.
    """
    amount = to_amount(amount)
    sign = "-" if amount < 0 else ""
    whole, cents = divmod(abs(amount), 1)
    text = f"{int(whole):,}".replace(",", ".")
    if cents:
        text += "," + f"{cents:.2f}"[2:]
    return f"{sign}{currency.symbol}{text}"


# =============================================================================
# MENUS AND PROMPTS
# =============================================================================

INVALID_CHOICE = "❌ Pilihan tidak valid. Ketik angka 1-{max} atau 'batal'"
INVALID_BALANCE = "❌ Saldo tidak valid. Ketik angka saja (contoh: 50000)"
CANCELLED = "✅ Dibatalkan."
ASSET_NOT_FOUND = "❌ Aset *{name}* tidak ditemukan.\n\nKetik /dompet untuk melihat daftar aset."
EXPIRED = "❌ Data transaksi sudah kadaluarsa. Silakan kirim ulang transaksinya."
GENERIC_ERROR = "❌ Maaf, terjadi kesalahan. Silakan coba lagi nanti."
FLOW_IN_PROGRESS = "⏳ Masih ada proses yang belum selesai. Jawab dulu pertanyaan sebelumnya, atau ketik 'batal'."
CURRENCY_MISMATCH = (
    "Mata uang terdeteksi {detected}, tapi aset {asset} memakai {currency}. "
    "Jumlah akan dicatat dalam {currency}."
)

EXPORT_MENU = (
    "📊 *Export Laporan*\n\n"
    "Pilih periode:\n"
    "1. Bulan ini\n"
    "2. 3 bulan terakhir\n"
    "3. 6 bulan terakhir\n"
    "4. Tahun ini\n\n"
    "Ketik angka pilihan atau 'batal'"
)
EXPORT_READY = "✅ *Laporan {label} siap!*\n\n📥 Link: {url}"
EXPORT_FAILED = "❌ Gagal membuat laporan. Silakan coba lagi nanti."

ASSET_OWNER_MENU = (
    "➕ *Tambah Aset Baru*\n\n"
    "Aset ini milik siapa?\n"
    "1. Pribadi\n"
    "2. Keluarga\n\n"
    "Ketik angka pilihan atau 'batal'"
)
ASSET_TYPE_MENU = (
    "➕ *Tambah Aset Baru*\n\n"
    "Pilih tipe aset:\n"
    "1. Tabungan\n"
    "2. E-Money\n"
    "3. Investasi\n"
    "4. Cash\n\n"
    "Ketik angka pilihan atau 'batal'"
)
ASSET_COUNTRY_MENU = "Negara?\n\n1. Jepang (JPY)\n2. Indonesia (IDR)"
ASSET_NAME_PROMPT = "Nama aset? (contoh: Yucho, BCA, PayPay)"
ASSET_BALANCE_PROMPT = "Saldo awal? (ketik angka saja, contoh: 50000)"
ASSET_CREATED = "✅ Aset *{name}* berhasil ditambahkan dengan saldo {balance}"

ASSET_EDIT_MENU = (
    "✏️ *Edit Aset: {name}*\n\n"
    "Saldo sekarang: {balance}\n\n"
    "1. Ubah nama\n"
    "2. Ubah saldo\n"
    "3. Batal"
)
ASSET_EDIT_NAME_PROMPT = "Nama baru untuk *{name}*?"
ASSET_EDIT_BALANCE_PROMPT = "Saldo baru untuk *{name}*? (ketik angka saja)"
ASSET_RENAMED = "✅ Nama aset diubah menjadi *{name}*"
ASSET_BALANCE_CHANGED = "✅ Saldo *{name}* diubah menjadi {balance}"

ASSET_DELETE_PROMPT = (
    "⚠️ *Hapus Aset: {name}*\n\n"
    "Saldo: {balance}\n"
    "Semua transaksi di aset ini juga akan dihapus.\n\n"
    "Yakin? Ketik 'ya' untuk menghapus."
)
ASSET_DELETED = "✅ Aset *{name}* berhasil dihapus"

TRANSACTION_CANCELLED = "❌ Transaksi dibatalkan."
RECEIPT_CANCELLED = "❌ Pengeluaran dibatalkan."
CONFIRM_HINT = "Ketik *1* / *ya* untuk simpan, *2* / *tidak* untuk batal."

UNREGISTERED = (
    "Halo! 👋\n\n"
    "Nomor kamu sepertinya belum terdaftar nih.\n\n"
    "Daftarin di sini ya:\n"
    "{frontend_url}/register?phone={phone}"
)
SETUP_REQUIRED = (
    "Halo {name}! 👋\n\n"
    "Akun kamu belum siap dipakai. Tambahkan aset dan pilih aset utama dulu ya:\n"
    "{frontend_url}/onboarding"
)
AMOUNT_UNCLEAR = (
    "🤔 Jumlahnya belum kebaca.\n\n"
    "Coba tulis lagi dengan angka, contoh: *makan siang 1500 yen*"
)
RECEIPT_FAILED = "❌ Gagal membaca struk. Coba foto ulang dengan lebih jelas, atau ketik transaksinya manual."
RECEIPT_NO_ASSET = "❌ Tidak ada aset {currency}. Tambahkan dulu dengan ketik *tambah aset*."
NO_ASSET = "❌ Belum ada aset untuk transaksi ini. Tambahkan dulu dengan ketik *tambah aset*."

HELP = (
    "📖 *Cara pakai Kanemane*\n\n"
    "*Catat transaksi*\n"
    "• makan siang 1500 yen\n"
    "• gaji 250000 yen\n"
    "• bayar listrik 50rb pakai BCA\n"
    "• kirim foto struk\n\n"
    "*Perintah*\n"
    "• saldo - lihat semua saldo\n"
    "• saldo <nama aset> - saldo satu aset\n"
    "• /dompet - daftar aset\n"
    "• tambah aset - tambah aset baru\n"
    "• edit aset <nama> - ubah nama atau saldo\n"
    "• hapus aset <nama> - hapus aset\n"
    "• laporan - export laporan ke Google Sheets\n"
    "• batal - batalkan proses yang sedang jalan"
)

GREETINGS = [
    "Halo {name}! 👋 Mau catat apa hari ini?",
    "Hai {name}! Ketik transaksinya ya, contoh: *makan siang 1500 yen*",
    "Halo {name}! Ketik *help* kalau butuh bantuan 😊",
]


def greeting(name: str) -> str:
    return random.choice(GREETINGS).format(name=name)


# =============================================================================
# COMPOSED MESSAGES
# =============================================================================

def transaction_summary(
    kind_label: str,
    amount: Decimal,
    currency: Currency,
    category: str,
    asset: Asset,
    note: Optional[str],
    warning: Optional[str] = None,
) -> str:
    """The confirmation card shown before a parsed transaction is booked."""
    lines = [
        "📝 *Konfirmasi Transaksi*",
        "",
        f"Tipe: {kind_label}",
        f"Jumlah: {format_money(amount, currency)}",
        f"Kategori: {normalize_category(category)}",
        f"Aset: {asset.name}",
    ]
    if note:
        lines.append(f"Note: {note}")
    if warning:
        lines += ["", f"⚠️ {warning}"]
    lines += ["", CONFIRM_HINT]
    return "\n".join(lines)


def receipt_summary(
    merchant: str,
    amount: Decimal,
    currency: Currency,
    category: str,
    date_text: str,
    asset: Asset,
) -> str:
    return "\n".join([
        "🧾 *Struk terbaca!*",
        "",
        f"Toko: {merchant}",
        f"Tanggal: {date_text}",
        f"Jumlah: {format_money(amount, currency)}",
        f"Kategori: {normalize_category(category)}",
        f"Aset: {asset.name}",
        "",
        CONFIRM_HINT,
    ])


def transaction_booked(
    kind_label: str,
    asset: Asset,
    category: str,
    amount: Decimal,
    note: Optional[str],
) -> str:
    return (
        f"✅ *{kind_label} tercatat!*\n\n"
        f"Asset: {asset.name}\n"
        f"Kategori: {normalize_category(category)}\n"
        f"Jumlah: {format_money(amount, asset.currency)}\n"
        f"Note: {note or '-'}\n\n"
        f"💰 Saldo: {format_money(asset.balance, asset.currency)}"
    )


def insufficient_balance(asset_name: str, balance: Decimal, requested: Decimal, currency: Currency) -> str:
    return (
        "❌ *Saldo tidak cukup!*\n\n"
        f"Saldo {asset_name}: {format_money(balance, currency)}\n"
        f"Dibutuhkan: {format_money(requested, currency)}"
    )


def balance_overview(assets: Iterable[Asset], primary_asset_id=None) -> str:
    """
    All balances grouped by currency, with a total per currency.

    The primary asset is marked with 🌟.
    """
    assets = list(assets)
    if not assets:
        return NO_ASSET

    lines = ["💰 *Saldo Kamu*"]
    for currency in Currency:
        group = [a for a in assets if a.currency is currency]
        if not group:
            continue
        lines += ["", f"*{currency.value}*"]
        for asset in group:
            star = " 🌟" if asset.id == primary_asset_id else ""
            lines.append(f"• {asset.name}{star}: {format_money(asset.balance, currency)}")
        total = sum((a.balance for a in group), Decimal("0"))
        lines.append(f"Total: {format_money(total, currency)}")
    return "\n".join(lines)


def single_balance(asset: Asset) -> str:
    return f"💰 Saldo *{asset.name}*: {format_money(asset.balance, asset.currency)}"


def wallet_list(assets: Iterable[Asset], primary_asset_id=None) -> str:
    assets = list(assets)
    if not assets:
        return NO_ASSET
    lines = ["👛 *Dompet Kamu*", ""]
    for index, asset in enumerate(assets, start=1):
        star = " 🌟" if asset.id == primary_asset_id else ""
        lines.append(
            f"{index}. {asset.name}{star} ({asset.type.label}, {asset.currency.value})"
            f" - {format_money(asset.balance, asset.currency)}"
        )
    return "\n".join(lines)
