"""
Use AWS KMS asymmetric keys as PGP keys.

See these links for more details:
 - https://tools.ietf.org/html/rfc4880
 - https://tools.ietf.org/html/rfc6637
 - https://docs.aws.amazon.com/kms/latest/APIReference/API_Sign.html
"""
