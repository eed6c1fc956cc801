"""Built-in evaluation set: five gold question/answer pairs and four sample documents.

The sample documents are ingested before the questions are asked, so the
run measures the whole pipeline on known content.  The last question has
no expected sources; it checks that a broad question still gets a cited
answer.
"""

from __future__ import annotations

from src.models.evaluation import EvaluationPair, QuestionCategory

SAMPLE_DOCUMENTS: dict[str, str] = {
    "renewable_energy.txt": """\
Renewable Energy: An Overview

Renewable energy sources have become central to tackling climate change and to
keeping national energy supplies secure. This overview covers the main types of
renewable energy and the benefits they bring.

Types of Renewable Energy
Solar energy captures sunlight with photovoltaic cells. Wind energy turns the
movement of air into electricity through turbines. Hydroelectric power generates
electricity from flowing water. Geothermal energy draws on heat stored deep in
the Earth. Biomass converts organic matter such as crop waste into usable energy.

Environmental Benefits
Renewable sources emit very little greenhouse gas compared with fossil fuels.
They reduce air pollution, water contamination and wider environmental
degradation, and they contribute directly to climate change mitigation.

Economic Advantages
Initial investment can be high, but renewable systems deliver long-term cost
savings. They create jobs in manufacturing, installation and maintenance, and
many regions have seen economic growth from renewable investment. Energy
independence follows from relying on local wind and sunlight rather than on
imported fuel.

Challenges and Solutions
The intermittency of solar and wind is addressed with energy storage and smart
grid systems. Government policy and incentives play a crucial role in adoption.
""",
    "machine_learning.txt": """\
Machine Learning: Fundamentals and Performance

Machine learning algorithms let systems learn and improve from experience
without being explicitly programmed for every case.

Training Processes
Algorithms learn through iterative training on datasets. The process covers data
preprocessing and cleaning, feature selection and engineering, model training and
validation, and finally performance evaluation and tuning.

Performance Factors
Data quality matters most: clean, relevant and representative data is crucial.
Data quantity matters too, since larger datasets generally improve performance.
Feature engineering helps models learn, the model architecture must suit the
problem, hyperparameter tuning optimizes model parameters, and sufficient
computational resources are needed for training.

Optimization Techniques
Cross-validation gives robust evaluation. Regularization prevents overfitting.
Ensemble methods improve accuracy, and transfer learning reuses pre-trained models.

Continuous Improvement
Models improve over time through feedback loops, additional training data and
algorithmic refinements. Regular monitoring and retraining keep performance from
drifting.
""",
    "climate_research.txt": """\
Climate Change Mitigation: Research Findings and Strategies

Recent research offers new insight into which climate change mitigation
strategies work.

Key Research Findings
Rapid decarbonization is needed: studies show emissions must fall immediately and
steeply. The renewable energy transition can meet global demand. Carbon capture
technologies, including direct air capture and storage, are advancing. Natural
climate solutions such as forests and wetlands sequester significant carbon.

Mitigation Strategies
Energy efficiency improvements across every sector, electrification of transport
and heating, industrial innovation in clean technology for heavy industry, and
sustainable agriculture that lowers emissions from food production.

Policy Recommendations
Implement carbon pricing mechanisms globally. Phase out fossil fuel subsidies.
Invest heavily in clean energy infrastructure. Establish binding international
agreements and support developing countries in their green transitions.

Timeline Goals
Reaching net-zero emissions by 2050 is critical for limiting global warming to
1.5 degrees. That requires unprecedented international cooperation and investment.
""",
    "qualitative_research.txt": """\
Qualitative Research: Data Collection Methodologies

Qualitative research gathers rich, descriptive data about human experience and
social phenomena through several families of methods.

Interview Methods
In-depth interviews explore individual perspectives one to one. Semi-structured
interviews follow predetermined topics with a flexible format. Life history
interviews take a biographical approach, and expert interviews draw on
knowledgeable individuals.

Observation Techniques
In participant observation the researcher takes part in the setting, while in
non-participant observation they watch without direct involvement. Ethnographic
studies involve immersive long-term observation of a culture. Structured
observation records specific behaviours systematically.

Group Methods
Focus groups are facilitated discussions with six to twelve participants.
Community forums host larger discussions on shared issues.

Document Analysis
Researchers review historical documents and archives, apply content analysis to
texts, and use narrative analysis to study stories and personal accounts. Case
studies examine specific instances in depth.
""",
}

EVALUATION_DATASET: list[EvaluationPair] = [
    EvaluationPair(
        id="eval-001",
        question="What are the main benefits of using renewable energy sources?",
        expected_answer=(
            "Renewable energy sources offer several key benefits including environmental "
            "sustainability, reduced greenhouse gas emissions, energy independence, "
            "cost-effectiveness over time, and job creation in green industries."
        ),
        expected_citations=["environmental benefits", "economic advantages", "sustainability"],
        category=QuestionCategory.FACTUAL,
        difficulty="easy",
        expected_sources=["renewable_energy.txt"],
    ),
    EvaluationPair(
        id="eval-002",
        question=(
            "How do machine learning algorithms improve over time, and what are the key "
            "factors that influence their performance?"
        ),
        expected_answer=(
            "Machine learning algorithms improve through training on larger datasets, feature "
            "engineering, hyperparameter tuning, and algorithmic improvements. Key factors "
            "include data quality, quantity, feature selection, model architecture, and "
            "computational resources."
        ),
        expected_citations=["training processes", "performance factors", "optimization techniques"],
        category=QuestionCategory.ANALYTICAL,
        difficulty="medium",
        expected_sources=["machine_learning.txt"],
    ),
    EvaluationPair(
        id="eval-003",
        question=(
            "Summarize the key findings and recommendations from the latest research on "
            "climate change mitigation strategies."
        ),
        expected_answer=(
            "Recent research emphasizes rapid decarbonization, the renewable energy transition, "
            "carbon capture technologies, policy reforms, and international cooperation. Key "
            "recommendations include net-zero emissions by 2050, large investment in clean "
            "energy, and carbon pricing mechanisms."
        ),
        expected_citations=["research findings", "mitigation strategies", "policy recommendations"],
        category=QuestionCategory.SUMMARY,
        difficulty="hard",
        expected_sources=["climate_research.txt"],
    ),
    EvaluationPair(
        id="eval-004",
        question="What specific methodologies are mentioned for data collection in qualitative research?",
        expected_answer=(
            "Methodologies for qualitative data collection include in-depth interviews, focus "
            "groups, participant observation, ethnographic studies, case studies, document "
            "analysis, and narrative inquiry."
        ),
        expected_citations=["interview methods", "observation techniques", "analysis approaches"],
        category=QuestionCategory.SPECIFIC,
        difficulty="medium",
        expected_sources=["qualitative_research.txt"],
    ),
    EvaluationPair(
        id="eval-005",
        question="What are the main themes discussed in the uploaded documents?",
        expected_answer=(
            "The main themes are identified from the uploaded documents, covering the primary "
            "topics, concepts, and subjects discussed across the collection."
        ),
        expected_citations=["document sections", "thematic content"],
        category=QuestionCategory.GENERAL,
        difficulty="easy",
    ),
]
