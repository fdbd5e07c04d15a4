"""
Fake data pools for consistent anonymization (Algerian locale).

Name pools hold ASCII-only tokens so generated names stay valid in any
collation and match plain ``[A-Za-z]`` checks.
"""

TEST_DOMAIN = 'test.local'

FIRST_NAMES = [
    'Ahmed', 'Mohamed', 'Ali', 'Omar', 'Youcef', 'Karim', 'Rachid', 'Samir',
    'Nabil', 'Hamza', 'Walid', 'Farid', 'Bilal', 'Sofiane', 'Amine', 'Mehdi',
    'Riad', 'Yacine', 'Lotfi', 'Adel', 'Fatima', 'Aicha', 'Khadija', 'Amina',
    'Nadia', 'Samira', 'Leila', 'Yasmina', 'Meriem', 'Sarah', 'Imane', 'Lina',
    'Nour', 'Rania', 'Sonia', 'Karima', 'Souad', 'Dalila', 'Houda', 'Asma',
]

LAST_NAMES = [
    'Benali', 'Benaissa', 'Bouzid', 'Brahimi', 'Cherif', 'Djebbar', 'Ferhat',
    'Guerfi', 'Haddad', 'Hamidi', 'Kaci', 'Khelifi', 'Larbi', 'Mansouri',
    'Meziane', 'Messaoudi', 'Nait', 'Ouali', 'Rahmani', 'Saadi', 'Saidi',
    'Slimani', 'Taleb', 'Touati', 'Yahiaoui', 'Zerrouki', 'Ziani', 'Amrani',
    'Belkacem', 'Boudiaf', 'Chaouch', 'Hadjadj', 'Lounis', 'Mebarki',
]

COMPANY_WORDS = [
    'Atlas', 'Sahara', 'Casbah', 'Tassili', 'Hoggar', 'Numidia', 'Djurdjura',
    'Medina', 'Cirta', 'Tipaza', 'Oasis', 'Horizon', 'Mediterranee', 'Aures',
]

COMPANY_SUFFIXES = ['SARL', 'SPA', 'EURL', 'SNC', 'SCS']

MOBILE_PREFIXES = [
    '055', '056', '057', '058', '059',  # Ooredoo / Mobilis ranges
    '066', '067', '068', '069',
    '077', '078', '079',
]

LANDLINE_PREFIXES = [
    '021', '023', '024', '025', '026', '027', '028', '029',
    '031', '032', '033', '034', '035', '036', '037', '038', '039',
]

INTERNATIONAL_PREFIX = '213'

CITIES = ['Alger', 'Oran', 'Constantine', 'Annaba', 'Blida', 'Batna', 'Setif', 'Tlemcen']

STREET_TYPES = ['Rue', 'Avenue', 'Boulevard', 'Place']

STREET_NAMES = [
    '1er Novembre', 'Didouche Mourad', 'Emir Abdelkader', 'Ahmed Zabana',
    'Larbi Ben Mhidi', 'Hassiba Ben Bouali', 'Colonel Amirouche', 'Mohamed Khemisti',
]

MESSAGE_PLACEHOLDER = '[message content removed]'
