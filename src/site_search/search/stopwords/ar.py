"""Arabic stop words, shared by every regional variant (ar-*)."""

STOPWORDS = frozenset(
    {
        "ال",
        "في",
        "من",
        "إلى",
        "على",
        "عن",
        "مع",
        "أن",
        "هذا",
        "هذه",
        "ذلك",
        "تلك",
        "هذان",
        "هاتان",
        "أولئك",
        "هؤلاء",
        "أنا",
        "أنت",
        "أنتِ",
        "أنتم",
        "أنتن",
        "هو",
        "هي",
        "هم",
        "هن",
        "نحن",
        "و",
        "أو",
        "لكن",
        "لكنّ",
        "بل",
        "ف",
        "ثم",
        "كان",
        "كانت",
        "كانوا",
        "يكون",
        "تكون",
        "ليس",
        "ليست",
        "ليسوا",
        "كل",
        "بعض",
        "أي",
        "كلا",
        "كلتا",
        "عند",
        "لدى",
        "قبل",
        "بعد",
        "أمام",
        "خلف",
        "فوق",
        "تحت",
        "بين",
        "ضد",
        "حول",
        "ما",
        "ماذا",
        "متى",
        "أين",
        "كيف",
        "لماذا",
        "كم",
        "قد",
        "لم",
        "لن",
        "لا",
        "نعم",
        "إن",
        "إذا",
        "لو",
        "حتى",
        "منذ",
        "عندما",
        "بينما",
        "لأن",
        "كي",
        "حيث",
        "إذن",
        "أيضا",
        "أيضاً",
        "فقط",
        "غير",
        "سوى",
        "إلا",
        "بدون",
        "مثل",
        "كما",
        "هنا",
        "هناك",
        "الآن",
        "اليوم",
        "غداً",
        "أمس",
        "دائماً",
        "أبداً",
        "ربما",
        "جداً",
        "جدا",
        "كثيراً",
        "قليلاً",
        "أكثر",
        "أقل",
        "كبير",
        "صغير",
        "جديد",
        "قديم",
        "أول",
        "آخر",
    }
)
