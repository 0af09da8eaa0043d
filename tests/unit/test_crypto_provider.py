"""Tests for key generation, certificate issuance and PKCS#12 encoding."""

import random
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from x509_lifecycle.crypto import (
    MIN_PASSPHRASE_LENGTH,
    PASSPHRASE_ALPHABET,
    CryptoProvider,
    build_name,
    verify_chain,
)
from x509_lifecycle.exceptions import (
    CryptoFailure,
    EncodingFailure,
    InvalidSubject,
    InvalidValidityPeriod,
)
from x509_lifecycle.models import (
    AlgorithmProfile,
    CertificateRequest,
    DistinguishedName,
    SigningContext,
)


def make_request(cn: str, validity_days: int = 1095, **extra) -> CertificateRequest:
    return CertificateRequest.from_properties(
        {"Subject": {"CN": cn}, "ValidFor": validity_days, **extra},
        default_validity_days=1095,
    )


@pytest.fixture(scope="module")
def root_ca():
    """Self-signed root authority shared by the signing tests."""
    provider = CryptoProvider(rng=random.Random(7))
    request = make_request("ca.local", IsAuthority=True)
    return provider.issue_certificate(request, provider.generate_key_pair())


class TestRandomness:
    """Tests for serial numbers and passphrases."""

    def test_serial_number_is_positive_and_large(self, crypto):
        """Test that serials are positive, fit 20 octets and exceed 64 bits."""
        for _ in range(50):
            serial = crypto.random_serial_number()
            assert serial > 0
            assert serial.bit_length() > 64
            assert serial < 2**159

    def test_serial_numbers_differ(self, crypto):
        """Test that consecutive serials are distinct."""
        serials = {crypto.random_serial_number() for _ in range(20)}

        assert len(serials) == 20

    def test_passphrase_length_and_alphabet(self, crypto):
        """Test that passphrases use the configured length and alphabet."""
        passphrase = crypto.generate_passphrase()

        assert len(passphrase) == 32
        assert set(passphrase) <= set(PASSPHRASE_ALPHABET)

    def test_seeded_source_is_reproducible(self):
        """Test that the same seed yields the same serials and passphrases."""
        first = CryptoProvider(rng=random.Random(42))
        second = CryptoProvider(rng=random.Random(42))

        assert first.random_serial_number() == second.random_serial_number()
        assert first.generate_passphrase() == second.generate_passphrase()

    def test_short_passphrase_rejected(self):
        """Test that a passphrase length below the minimum is rejected."""
        with pytest.raises(ValueError, match="at least"):
            CryptoProvider(passphrase_length=MIN_PASSPHRASE_LENGTH - 1)

    def test_unavailable_random_source(self):
        """Test that a failing random source raises CryptoFailure."""
        rng = MagicMock()
        rng.getrandbits.side_effect = NotImplementedError
        rng.choice.side_effect = OSError("no entropy")
        provider = CryptoProvider(rng=rng)

        with pytest.raises(CryptoFailure):
            provider.random_serial_number()
        with pytest.raises(CryptoFailure):
            provider.generate_passphrase()


class TestGenerateKeyPair:
    """Tests for key pair generation."""

    def test_rsa_2048(self, crypto):
        """Test that the default profile yields an RSA-2048 key."""
        key = crypto.generate_key_pair()

        assert key.private_key.key_size == 2048
        assert key.public_key.public_numbers().e == 65537
        assert key.public_key_pem.startswith(b"-----BEGIN PUBLIC KEY-----")

    def test_unsupported_algorithm(self, crypto):
        """Test that an unsupported profile raises CryptoFailure."""
        with pytest.raises(CryptoFailure, match="Unsupported"):
            crypto.generate_key_pair(AlgorithmProfile(algorithm="DSA"))

    def test_encrypted_private_key_pem(self, crypto):
        """Test that a passphrase produces an encrypted PKCS#8 PEM."""
        key = crypto.generate_key_pair()

        assert b"ENCRYPTED PRIVATE KEY" in key.private_key_pem("correct horse battery")
        assert b"BEGIN PRIVATE KEY" in key.private_key_pem()


class TestIssueSelfSigned:
    """Tests for self-signed issuance."""

    def test_renderfarm_certificate(self, crypto):
        """Test a self-signed certificate valid for 1095 days."""
        key = crypto.generate_key_pair()
        issued = crypto.issue_certificate(make_request("renderfarm.local"), key)
        cert = issued.certificate

        assert issued.not_after - issued.not_before == timedelta(days=1095)
        assert (
            cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value
            == "renderfarm.local"
        )
        assert issued.is_self_signed
        assert issued.chain == ()
        assert verify_chain(cert, ())

    def test_self_signed_defaults_to_ca(self, crypto):
        """Test that a self-signed certificate can act as an authority."""
        issued = crypto.issue_certificate(
            make_request("renderfarm.local"), crypto.generate_key_pair()
        )
        constraints = issued.certificate.extensions.get_extension_for_class(
            x509.BasicConstraints
        ).value
        usage = issued.certificate.extensions.get_extension_for_class(x509.KeyUsage).value

        assert constraints.ca is True
        assert usage.key_cert_sign is True

    def test_extensions(self, crypto):
        """Test SAN, extended key usage and key identifiers."""
        key = crypto.generate_key_pair()
        issued = crypto.issue_certificate(make_request("rcs.local"), key)
        extensions = issued.certificate.extensions

        san = extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        eku = extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
        ski = extensions.get_extension_for_class(x509.SubjectKeyIdentifier).value
        aki = extensions.get_extension_for_class(x509.AuthorityKeyIdentifier).value

        assert san.get_values_for_type(x509.DNSName) == ["rcs.local"]
        assert ExtendedKeyUsageOID.SERVER_AUTH in eku
        assert ExtendedKeyUsageOID.CLIENT_AUTH in eku
        assert aki.key_identifier == ski.digest

    def test_full_subject(self, crypto):
        """Test that every subject attribute is encoded."""
        request = CertificateRequest.from_properties(
            {
                "Subject": {
                    "CN": "renderfarm.local",
                    "O": "Render Farm",
                    "OU": "Pipeline",
                    "L": "Seattle",
                    "C": "US",
                }
            },
            default_validity_days=30,
        )
        issued = crypto.issue_certificate(request, crypto.generate_key_pair())

        assert issued.subject.rfc4514_string() == (
            "CN=renderfarm.local,OU=Pipeline,O=Render Farm,L=Seattle,C=US"
        )
        assert issued.not_after - issued.not_before == timedelta(days=30)

    def test_invalid_common_name(self, crypto):
        """Test that a non-DNS common name is rejected."""
        with pytest.raises(InvalidSubject):
            crypto.issue_certificate(
                make_request("not a hostname!"), crypto.generate_key_pair()
            )

    @pytest.mark.parametrize("days", [0, -1, 3651])
    def test_invalid_validity(self, crypto, days):
        """Test that out-of-range validity periods are rejected."""
        with pytest.raises(InvalidValidityPeriod):
            crypto.issue_certificate(
                make_request("renderfarm.local", days), crypto.generate_key_pair()
            )

    def test_max_validity_is_configurable(self, rng):
        """Test that the validity ceiling comes from the provider."""
        provider = CryptoProvider(rng=rng, max_validity_days=365)

        with pytest.raises(InvalidValidityPeriod, match="365"):
            provider.issue_certificate(
                make_request("renderfarm.local", 366), provider.generate_key_pair()
            )


class TestIssueSigned:
    """Tests for CA-signed issuance."""

    def test_leaf_signed_by_root(self, crypto, root_ca):
        """Test that a leaf is issued and chained to its authority."""
        leaf = crypto.issue_certificate(
            make_request("rcs.local", IsAuthority=False),
            crypto.generate_key_pair(),
            SigningContext.from_issued(root_ca),
        )

        assert leaf.issuer == root_ca.subject
        assert leaf.chain == (root_ca.certificate,)
        assert not leaf.is_self_signed
        assert verify_chain(leaf.certificate, leaf.chain)
        assert leaf.chain_pem == root_ca.certificate_pem

    def test_leaf_is_not_ca(self, crypto, root_ca):
        """Test that a leaf carries no CA basic constraints."""
        leaf = crypto.issue_certificate(
            make_request("rcs.local", IsAuthority=False),
            crypto.generate_key_pair(),
            SigningContext.from_issued(root_ca),
        )
        constraints = leaf.certificate.extensions.get_extension_for_class(
            x509.BasicConstraints
        ).value

        assert constraints.ca is False

    def test_intermediate_chain(self, crypto, root_ca):
        """Test that a chain through an intermediate lists issuer first, root last."""
        intermediate = crypto.issue_certificate(
            make_request("intermediate.local", IsAuthority=True),
            crypto.generate_key_pair(),
            SigningContext.from_issued(root_ca),
        )
        leaf = crypto.issue_certificate(
            make_request("worker-01.render.local", IsAuthority=False),
            crypto.generate_key_pair(),
            SigningContext.from_issued(intermediate),
        )

        assert leaf.chain == (intermediate.certificate, root_ca.certificate)
        assert verify_chain(leaf.certificate, leaf.chain)


class TestToPkcs12:
    """Tests for PKCS#12 encoding."""

    def test_round_trip_with_passphrase(self, crypto, root_ca):
        """Test that the bundle opens with its passphrase and holds the chain."""
        leaf = crypto.issue_certificate(
            make_request("rcs.local", IsAuthority=False),
            crypto.generate_key_pair(),
            SigningContext.from_issued(root_ca),
        )

        bundle = crypto.to_pkcs12(leaf, leaf.key)
        key, cert, additional = pkcs12.load_key_and_certificates(
            bundle.data, bundle.passphrase.encode()
        )

        assert cert == leaf.certificate
        assert key.private_numbers() == leaf.key.private_key.private_numbers()
        assert additional == [root_ca.certificate]
        assert bundle.source_serial == leaf.serial_number
        assert bundle.source_serial_hex == leaf.serial_hex

    def test_wrong_passphrase_fails(self, crypto):
        """Test that a wrong passphrase does not open the bundle."""
        issued = crypto.issue_certificate(
            make_request("renderfarm.local"), crypto.generate_key_pair()
        )
        bundle = crypto.to_pkcs12(issued, issued.key)

        with pytest.raises(ValueError):
            pkcs12.load_key_and_certificates(bundle.data, b"not-the-passphrase")

    def test_legacy_encryption(self, rng):
        """Test that legacy-encrypted bundles still open with the passphrase."""
        provider = CryptoProvider(rng=rng, legacy_pkcs12=True)
        issued = provider.issue_certificate(
            make_request("renderfarm.local"), provider.generate_key_pair()
        )

        bundle = provider.to_pkcs12(issued, issued.key)
        _, cert, _ = pkcs12.load_key_and_certificates(
            bundle.data, bundle.passphrase.encode()
        )

        assert cert == issued.certificate

    def test_mismatched_key(self, crypto):
        """Test that a key from another certificate raises EncodingFailure."""
        issued = crypto.issue_certificate(
            make_request("renderfarm.local"), crypto.generate_key_pair()
        )

        with pytest.raises(EncodingFailure):
            crypto.to_pkcs12(issued, crypto.generate_key_pair())


class TestBuildName:
    """Tests for subject name encoding."""

    def test_common_name_only(self):
        """Test a name with only a common name."""
        name = build_name(DistinguishedName(CN="renderfarm.local"))

        assert name.rfc4514_string() == "CN=renderfarm.local"
